import logging
import os
from typing import List

from ..artifact import (
    BUILDER_ID_IMPORT,
    BUILDER_ID_SAVE,
    BUILDER_ID_TAG,
    Artifact,
    ExportArtifact,
)
from .base import PostProcessor

logger = logging.getLogger(__name__)


class SavePostProcessor(PostProcessor):
    """Write an image to a tarball with ``<engine> save``."""

    type_name = "save"
    keys = {"path": "str"}
    accepts = (BUILDER_ID_IMPORT, BUILDER_ID_TAG)

    def validate(self) -> List[str]:
        path = self.options.get("path")
        if not path:
            return ["save.path is required"]
        if os.path.isdir(path):
            return ["save.path must be a file, not a directory"]
        return []

    def post_process(self, artifact: Artifact) -> Artifact:
        self.check_artifact(artifact)

        path = self.options["path"]
        logger.info("Saving image %s to %s", artifact.id, path)
        try:
            with open(path, "wb") as sink:
                self.driver.save_image(artifact.id, sink)
        except BaseException:
            if os.path.exists(path):
                os.remove(path)
            raise

        state_data = {}
        if artifact.state("generated_data") is not None:
            state_data["generated_data"] = artifact.generated_data
        return ExportArtifact(path=path, builder_id=BUILDER_ID_SAVE, state_data=state_data)

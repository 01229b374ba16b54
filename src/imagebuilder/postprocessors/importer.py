import logging
from typing import List

from ..artifact import BUILDER_ID, BUILDER_ID_IMPORT, Artifact, ImportArtifact
from ..errors import PostProcessorError
from .base import PostProcessor

logger = logging.getLogger(__name__)


class ImportPostProcessor(PostProcessor):
    """Import an exported container tarball as an image."""

    type_name = "import"
    keys = {
        "repository": "str",
        "tag": "str",
        "changes": "list",
        "platform": "str",
    }
    accepts = (BUILDER_ID,)

    def validate(self) -> List[str]:
        if not self.options.get("repository"):
            return ["import.repository is required"]
        return []

    def post_process(self, artifact: Artifact) -> Artifact:
        self.check_artifact(artifact)
        files = artifact.files()
        if not files:
            raise PostProcessorError(
                "Nothing to import: the build did not export a tarball"
            )

        repository = self.options["repository"]
        if self.options.get("tag"):
            repository = f"{repository}:{self.options['tag']}"

        logger.info("Importing image: %s", files[0])
        logger.info("Repository: %s", repository)
        image_id = self.driver.import_tarball(
            files[0],
            self.options.get("changes", []),
            repository,
            self.options.get("platform") or None,
        )
        logger.info("Imported ID: %s", image_id)

        state_data = {}
        if artifact.state("generated_data") is not None:
            state_data["generated_data"] = artifact.generated_data
        return ImportArtifact(
            image_id=repository,
            builder_id=BUILDER_ID_IMPORT,
            driver=self.driver,
            state_data=state_data,
        )

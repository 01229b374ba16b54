import logging
from typing import List

from ..artifact import BUILDER_ID_IMPORT, BUILDER_ID_TAG, Artifact, ImportArtifact
from .base import PostProcessor

logger = logging.getLogger(__name__)


class TagPostProcessor(PostProcessor):
    """Tag a committed image under a repository, once per configured tag."""

    type_name = "tag"
    keys = {
        "repository": "str",
        "tags": "list",
        "tag": "list",
        "force": "bool",
    }
    accepts = (BUILDER_ID_IMPORT, BUILDER_ID_TAG)

    def validate(self) -> List[str]:
        if not self.options.get("repository"):
            return ["tag.repository is required"]
        return []

    @property
    def tags(self) -> List[str]:
        return list(self.options.get("tags", [])) + list(self.options.get("tag", []))

    def post_process(self, artifact: Artifact) -> Artifact:
        if self.options.get("tag"):
            logger.warning(
                'Deprecation warning: "tag" option has been replaced with "tags". '
                "In future versions this configuration may not work."
            )
        self.check_artifact(artifact)

        repository = self.options["repository"]
        force = self.options.get("force", False)
        last_tagged = repository
        repo_tags: List[str] = []

        if self.tags:
            for tag in self.tags:
                local = f"{repository}:{tag}"
                logger.info("Tagging image: %s", artifact.id)
                logger.info("Repository: %s", local)
                self.driver.tag_image(artifact.id, local, force)
                repo_tags.append(local)
                last_tagged = local
        else:
            logger.info("Tagging image: %s", artifact.id)
            logger.info("Repository: %s", repository)
            self.driver.tag_image(artifact.id, repository, force)

        state_data = {"docker_tags": repo_tags}
        if artifact.state("generated_data") is not None:
            state_data["generated_data"] = artifact.generated_data

        return ImportArtifact(
            image_id=last_tagged,
            builder_id=BUILDER_ID_TAG,
            driver=self.driver,
            state_data=state_data,
        )

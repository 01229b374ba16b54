import logging
from contextlib import nullcontext
from typing import Any, List, Mapping, Optional

from ..artifact import BUILDER_ID_IMPORT, BUILDER_ID_TAG, Artifact, ImportArtifact
from ..credentials import AwsAccessConfig, CredentialResolver, EcrCredentialResolver
from ..engine.base import EngineDriver
from ..errors import EngineError
from .base import PostProcessor

logger = logging.getLogger(__name__)


class PushPostProcessor(PostProcessor):
    """
    Push a tagged image to its registry.

    Every tag recorded by a preceding ``tag`` post-processor is pushed; an
    untagged artifact is pushed under its own id. When ``login`` or
    ``ecr_login`` is set the pushes happen inside a single registry session.
    """

    type_name = "push"
    keys = {
        "login": "bool",
        "login_username": "str",
        "login_password": "str",
        "login_server": "str",
        "ecr_login": "bool",
        "aws_access_key": "str",
        "aws_secret_key": "str",
        "aws_token": "str",
        "aws_profile": "str",
        "platform": "str",
    }
    accepts = (BUILDER_ID_IMPORT, BUILDER_ID_TAG)

    def __init__(
        self,
        driver: EngineDriver,
        raw: Mapping[str, Any],
        credentials: Optional[CredentialResolver] = None,
    ):
        super().__init__(driver, raw)
        self.credentials = credentials or EcrCredentialResolver(
            AwsAccessConfig(
                access_key=self.options.get("aws_access_key", ""),
                secret_key=self.options.get("aws_secret_key", ""),
                token=self.options.get("aws_token", ""),
                profile=self.options.get("aws_profile", ""),
            )
        )

    def validate(self) -> List[str]:
        if self.options.get("ecr_login") and not self.options.get("login_server"):
            return ["ECR login requires login server to be provided."]
        return []

    def _session(self):
        options = self.options
        if not (options.get("login") or options.get("ecr_login")):
            return nullcontext()

        server = options.get("login_server", "")
        username = options.get("login_username", "")
        password = options.get("login_password", "")
        if options.get("ecr_login"):
            logger.info("Fetching ECR credentials...")
            username, password = self.credentials.resolve(server)
        logger.info("Logging in to %s...", server or "default registry")
        return self.driver.logged_in(server, username, password)

    def post_process(self, artifact: Artifact) -> Artifact:
        self.check_artifact(artifact)

        names = artifact.tags() if isinstance(artifact, ImportArtifact) else []
        if not names:
            names = [artifact.id]
        platform = self.options.get("platform") or None

        with self._session():
            for name in names:
                logger.info("Pushing: %s", name)
                self.driver.push(name, platform)

        digest = ""
        try:
            digest = self.driver.digest(names[-1])
        except EngineError as exc:
            logger.warning("Unable to determine digest of %s: %s", names[-1], exc)

        state_data = {"docker_tags": names, "digest": digest}
        if artifact.state("generated_data") is not None:
            state_data["generated_data"] = artifact.generated_data

        return ImportArtifact(
            image_id=artifact.id,
            builder_id=BUILDER_ID_IMPORT,
            driver=self.driver,
            state_data=state_data,
        )

import logging
from typing import Optional

from ...credentials import CredentialResolver
from ...errors import EngineError
from ..runner import Step, StepAction
from ..state import SOURCE_IMAGE_DIGEST, SOURCE_IMAGE_SHA256, BuildState
from ._login import registry_session

logger = logging.getLogger(__name__)


class PullStep(Step):
    """Make sure the base image is present and record where it came from."""

    description = "Pulling base image"

    def __init__(self, credentials: Optional[CredentialResolver] = None):
        self.credentials = credentials

    def run(self, state: BuildState) -> StepAction:
        config = state.config
        if not config.pull:
            logger.debug("Pull disabled, won't call docker pull")
        else:
            logger.info("Pulling Docker image: %s", state.image)
            with registry_session(state, self.credentials):
                state.driver.pull(state.image, config.platform or None)

        self._store_source_image_info(state)
        return StepAction.CONTINUE

    def _store_source_image_info(self, state: BuildState) -> None:
        driver = state.driver

        sha256 = ""
        try:
            sha256 = driver.sha256(state.image)
        except EngineError as exc:
            logger.error("Error determining source Docker image Id: %s", exc)
        state.source_sha256 = sha256
        state.generated_data[SOURCE_IMAGE_SHA256] = sha256

        # A locally built image has no distribution digest.
        if state.bootstrapped:
            state.generated_data[SOURCE_IMAGE_DIGEST] = ""
            return

        digest = ""
        try:
            digest = driver.digest(state.image)
        except EngineError:
            logger.warning(
                "Error determining source Docker image digest; this image may "
                "not have been pushed yet, which means no distribution digest "
                "has been created. If you plan to push later, the digest value "
                "will be stored then."
            )
        state.source_digest = digest
        state.generated_data[SOURCE_IMAGE_DIGEST] = digest

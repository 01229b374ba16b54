import logging
from typing import Optional

from ...credentials import CredentialResolver
from ...errors import EngineError
from ..runner import Step, StepAction
from ..state import BuildState
from ._login import registry_session

logger = logging.getLogger(__name__)


class BootstrapStep(Step):
    """
    Build the base image from a Dockerfile.

    The step does nothing when no ``build`` section was configured. Otherwise
    the freshly built image replaces the configured base image for every
    later step.
    """

    description = "Building base image"

    def __init__(self, credentials: Optional[CredentialResolver] = None):
        self.credentials = credentials
        self.ran = False

    def run(self, state: BuildState) -> StepAction:
        bootstrap = state.config.bootstrap
        if bootstrap.is_default():
            return StepAction.CONTINUE

        logger.info("Building base image...")
        with registry_session(state, self.credentials):
            image_id = state.driver.build(bootstrap.build_args())
        logger.info("Finished building base image %r", image_id)

        state.image = image_id
        state.bootstrapped = True
        self.ran = True
        return StepAction.CONTINUE

    def cleanup(self, state: BuildState) -> None:
        if not self.ran:
            return
        if not state.config.discard:
            logger.info(
                "Final image is not discarded; keeping the bootstrap image %s "
                "since the result depends on it.",
                state.image,
            )
            return
        try:
            state.driver.delete_image(state.image)
        except EngineError as exc:
            logger.warning("Failed to remove image %r: %s", state.image, exc)
            logger.warning(
                "If you have other images using this Dockerfile, this is "
                "expected and can safely be ignored."
            )

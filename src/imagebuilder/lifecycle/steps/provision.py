import logging
from typing import Sequence

from ...errors import ProvisionerError
from ...provisioners import Provisioner
from ..runner import Step, StepAction
from ..state import BuildState

logger = logging.getLogger(__name__)


class ProvisionStep(Step):
    """Run every configured provisioner, in order, through the communicator."""

    description = "Provisioning"

    def __init__(self, provisioners: Sequence[Provisioner] = ()):
        self.provisioners = list(provisioners)

    def run(self, state: BuildState) -> StepAction:
        if not self.provisioners:
            return StepAction.CONTINUE
        if state.communicator is None:
            raise ProvisionerError(
                "Provisioners are configured but no communicator is connected "
                f"(communicator = {state.config.communicator!r})"
            )

        for provisioner in self.provisioners:
            if state.cancel_event.is_set():
                logger.info("Build cancelled; skipping remaining provisioners")
                break
            logger.info("Running %s provisioner", provisioner.type_name)
            provisioner.provision(state.communicator)
        return StepAction.CONTINUE

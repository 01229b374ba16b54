from ..runner import Step, StepAction
from ..state import BuildState


class SeedGeneratedDataStep(Step):
    """Reset every generated data key to its not-found sentinel."""

    description = "Preparing generated data"

    def run(self, state: BuildState) -> StepAction:
        state.generated_data.reset()
        return StepAction.CONTINUE

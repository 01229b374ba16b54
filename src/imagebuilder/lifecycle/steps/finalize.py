"""Terminal steps: turn the provisioned container into the build result."""

import logging
import os

from ...engine.base import EMPTY_ARRAY_SENTINEL
from ...errors import EngineError
from ..runner import Step, StepAction
from ..state import IMAGE_SHA256, BuildState

logger = logging.getLogger(__name__)


class SetDefaultsStep(Step):
    """Restore the base image's CMD and ENTRYPOINT on commit.

    The working container runs with an overridden entrypoint, so without
    these changes the committed image would inherit it. Changes supplied by
    the user take precedence.
    """

    description = "Restoring image defaults"

    def run(self, state: BuildState) -> StepAction:
        driver = state.driver
        default_cmd = _inspect_or_sentinel(driver.cmd, state.image)
        default_entrypoint = _inspect_or_sentinel(driver.entrypoint, state.image)

        has_cmd = any(change.startswith("CMD") for change in state.changes)
        has_entrypoint = any(
            change.startswith("ENTRYPOINT") for change in state.changes
        )

        if not has_cmd:
            state.changes.append(f"CMD {default_cmd}")
        if not has_entrypoint:
            state.changes.append(f"ENTRYPOINT {default_entrypoint}")
        return StepAction.CONTINUE


def _inspect_or_sentinel(inspect, image: str) -> str:
    try:
        return inspect(image) or EMPTY_ARRAY_SENTINEL
    except EngineError as exc:
        logger.debug("Could not inspect %s: %s", image, exc)
        return EMPTY_ARRAY_SENTINEL


class CommitStep(Step):
    """Commit the container to a new image."""

    description = "Committing container"

    def run(self, state: BuildState) -> StepAction:
        config = state.config
        driver = state.driver
        container_id = state.container_id
        if container_id is None:
            raise EngineError("no container to commit")

        if config.windows_container:
            # docker can't commit a running Windows container
            try:
                driver.stop_container(container_id)
            except EngineError as exc:
                raise EngineError(
                    f"Error halting windows container for commit: {exc}"
                ) from exc

        logger.info("Committing the container")
        image_id = driver.commit(container_id, config.author, state.changes, config.message)
        state.image_id = image_id

        try:
            state.generated_data[IMAGE_SHA256] = driver.sha256(image_id)
        except EngineError as exc:
            logger.debug("Could not read sha256 of %s: %s", image_id, exc)

        logger.info("Image ID: %s", image_id)
        return StepAction.CONTINUE


class ExportStep(Step):
    """Export the container filesystem to a tarball."""

    description = "Exporting container"

    def run(self, state: BuildState) -> StepAction:
        export_path = state.config.export_path
        if not export_path:
            raise EngineError("no export path configured")
        if state.container_id is None:
            raise EngineError("no container to export")

        logger.info("Exporting the container to %s", export_path)
        try:
            with open(export_path, "wb") as sink:
                state.driver.export(state.container_id, sink)
        except BaseException:
            # Never leave a truncated archive behind.
            if os.path.exists(export_path):
                os.remove(export_path)
            raise
        return StepAction.CONTINUE

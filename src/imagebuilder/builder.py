"""
The image builder: validation, pipeline assembly and artifact construction.

Example:
    >>> builder = Builder()
    >>> generated, warnings = builder.prepare({"image": "ubuntu:24.04", "commit": True})
    >>> artifact = builder.run(provisioners=[ShellProvisioner(inline=["apt-get update"])])
    >>> print(artifact)
    Imported Docker image: sha256:...
"""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from rich.console import Console

from .artifact import BUILDER_ID_IMPORT, Artifact, ExportArtifact, ImportArtifact
from .credentials import CredentialResolver
from .engine import create_driver
from .engine.base import EngineDriver
from .errors import EngineError
from .lifecycle.config import BuildConfig, TerminalActionKind
from .lifecycle.runner import Step, StepRunner
from .lifecycle.state import IMAGE_SHA256, SOURCE_IMAGE_DIGEST, BuildState
from .lifecycle.steps import (
    BootstrapStep,
    CommitStep,
    ConnectStep,
    ExportStep,
    ProvisionStep,
    PullStep,
    RunContainerStep,
    SeedGeneratedDataStep,
    SetDefaultsStep,
    TempDirStep,
)
from .provisioners import Provisioner

logger = logging.getLogger(__name__)


class Builder:
    """Builds one image from a validated configuration.

    Args:
        driver: Engine driver to use. When omitted a :class:`DockerDriver`
            for the configured ``docker_path`` is created on :meth:`run`.
        credentials: Resolver for ``ecr_login`` credentials. Defaults to the
            AWS CLI based resolver.
    """

    def __init__(
        self,
        driver: Optional[EngineDriver] = None,
        credentials: Optional[CredentialResolver] = None,
    ):
        self.driver = driver
        self.credentials = credentials
        self.config: Optional[BuildConfig] = None
        self.state: Optional[BuildState] = None
        self._runner: Optional[StepRunner] = None

    def prepare(self, raw: Mapping[str, Any]) -> Tuple[List[str], List[str]]:
        """Validate ``raw`` and keep the resulting configuration.

        Returns:
            The generated data keys this builder exposes, and warnings.

        Raises:
            ValidationError: With every configuration problem found.
        """
        self.config, warnings = BuildConfig.prepare(raw)
        for warning in warnings:
            logger.warning(warning)
        return [IMAGE_SHA256, SOURCE_IMAGE_DIGEST], warnings

    def steps(self, provisioners: Sequence[Provisioner] = ()) -> List[Step]:
        config = self.require_config()
        steps: List[Step] = [
            SeedGeneratedDataStep(),
            TempDirStep(),
            BootstrapStep(self.credentials),
            PullStep(self.credentials),
            RunContainerStep(),
            ConnectStep(),
            ProvisionStep(provisioners),
        ]

        action = config.terminal_action
        if action.kind is TerminalActionKind.DISCARD:
            logger.debug("Container will be discarded")
        elif action.kind is TerminalActionKind.COMMIT:
            logger.debug("Container will be committed")
            steps.extend([SetDefaultsStep(), CommitStep()])
        else:
            logger.debug("Container will be exported to %s", action.export_path)
            steps.append(ExportStep())
        return steps

    def run(
        self,
        provisioners: Sequence[Provisioner] = (),
        *,
        console: Optional[Console] = None,
    ) -> Optional[Artifact]:
        """Run the build pipeline.

        Returns:
            The artifact, or ``None`` when the build was cancelled.

        Raises:
            EngineError: If the engine is unusable or a step failed.
        """
        config = self.require_config()
        driver = self.driver or create_driver(
            "docker", executable=config.docker_path, console=console
        )
        driver.verify()
        version = driver.version()
        logger.debug("Docker version: %s", version)

        state = BuildState.initial(config, driver)
        self.state = state
        self._runner = StepRunner(self.steps(provisioners), console=console)
        try:
            self._runner.run(state)
        finally:
            self._runner = None

        if state.cancelled:
            logger.info("Build cancelled")
            return None
        if state.error is not None:
            raise state.error

        state_data = {"generated_data": state.generated_data.to_dict()}
        if config.terminal_action.kind is TerminalActionKind.COMMIT:
            if not state.image_id:
                raise EngineError("Commit finished without producing an image ID")
            return ImportArtifact(
                image_id=state.image_id,
                builder_id=BUILDER_ID_IMPORT,
                driver=driver,
                state_data=state_data,
            )
        return ExportArtifact(path=config.export_path or "", state_data=state_data)

    def cancel(self) -> None:
        """Stop the build before its next step."""
        if self._runner is not None:
            self._runner.cancel()

    def require_config(self) -> BuildConfig:
        """Return the prepared configuration.

        Raises:
            RuntimeError: If :meth:`prepare` has not succeeded yet.
        """
        if self.config is None:
            raise RuntimeError("Builder.prepare() must be called before running")
        return self.config

"""Custom error types for imagebuilder."""

from __future__ import annotations

from typing import List, Optional, Sequence, Union

from rich.console import Console, ConsoleRenderable
from rich.syntax import Syntax


class ImageBuilderError(Exception):
    """Base class for every error raised by imagebuilder."""


class ValidationError(ImageBuilderError):
    """Raised when the build configuration is inconsistent.

    Validation runs once, before any engine command is executed, and collects
    every problem it finds instead of stopping at the first one. A single
    failed ``prepare`` therefore reports all defects of the configuration at
    once.

    Common causes:
        - Neither ``image`` nor a ``build`` section was given
        - More than one of ``commit``, ``discard`` and ``export_path`` is set
        - ``export_path`` points to an existing directory
        - ``ecr_login`` requested without a ``login_server``
        - The bootstrap Dockerfile or build directory does not exist

    Attributes:
        errors: Every validation failure, in the order it was detected.
        warnings: Non-blocking notices emitted while validating.

    Examples:
        >>> BuildConfig.prepare({"image": "bar", "export_path": "/tmp"})
        Traceback (most recent call last):
        ...
        ValidationError: 1 configuration error(s):
          * export_path must be a file, not a directory
    """

    def __init__(
        self,
        errors: Sequence[Union[str, Exception]],
        *,
        warnings: Optional[Sequence[str]] = None,
    ) -> None:
        self.errors: List[Union[str, Exception]] = list(errors)
        self.warnings: List[str] = list(warnings or [])
        super().__init__(self._render())

    def _render(self) -> str:
        lines = [f"{len(self.errors)} configuration error(s):"]
        lines.extend(f"  * {error}" for error in self.errors)
        return "\n".join(lines)

    def __rich_console__(self, console: Console, options):  # pragma: no cover
        yield f"[bold red]{len(self.errors)} configuration error(s):[/bold red]"
        for error in self.errors:
            yield f"  [red]*[/red] {error}"
        for warning in self.warnings:
            yield f"  [yellow]![/yellow] {warning}"


class ConfigConflictError(ImageBuilderError):
    """Raised when more than one terminal action is requested.

    Exactly one of ``commit``, ``discard`` or ``export_path`` decides what
    happens to the working container once provisioning is done.
    """


class MissingArtifactInstructionError(ImageBuilderError):
    """Raised when no terminal action is requested at all."""


class EngineError(ImageBuilderError):
    """Base class for errors originating from the container engine CLI."""


class EngineNotFoundError(EngineError):
    """Raised when the engine executable cannot be located on ``PATH``.

    What to check:
        - Install Docker (or a compatible engine such as Podman)
        - Ensure the executable is on your PATH (try: ``which docker``)
        - Or point ``docker_path`` at the executable explicitly
    """


class EngineVersionError(EngineError):
    """Raised when ``<engine> -v`` prints no recognisable version."""


class EngineCommandError(EngineError):
    """Raised when an engine command exits with a non-zero status.

    The captured standard output and standard error are always attached so
    the failure can be diagnosed without re-running the build.

    Attributes:
        message: Short description of the failed operation.
        command: The argument vector that was executed.
        returncode: The process exit status.
        stdout: Captured standard output.
        stderr: Captured standard error.
    """

    def __init__(
        self,
        message: str,
        *,
        command: Optional[Sequence[str]] = None,
        returncode: Optional[int] = None,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.command: List[str] = list(command or [])
        self.returncode = returncode
        self.stdout = stdout or ""
        self.stderr = stderr or ""
        self._syntax: Optional[ConsoleRenderable] = self._build_syntax(self.command)

    @staticmethod
    def _build_syntax(command: Sequence[str]) -> Optional[ConsoleRenderable]:
        if not command:
            return None
        try:
            return Syntax(" ".join(command), "bash", theme="monokai")
        except Exception:
            return None

    def __str__(self) -> str:
        parts = [self.message]
        if self.command:
            parts.append(f"command: {' '.join(self.command)}")
        if self.returncode is not None:
            parts.append(f"exit code: {self.returncode}")
        parts.append(f"stdout: {self.stdout.strip()}")
        parts.append(f"stderr: {self.stderr.strip()}")
        return "\n".join(parts)

    def __rich_console__(self, console: Console, options):  # pragma: no cover
        yield self.message
        if self._syntax is not None:
            yield self._syntax
        if self.returncode is not None:
            yield f"exit code: {self.returncode}"
        if self.stdout.strip():
            yield "stdout:"
            yield self.stdout.strip()
        if self.stderr.strip():
            yield "stderr:"
            yield self.stderr.strip()


class CredentialError(ImageBuilderError):
    """Raised when registry credentials cannot be obtained.

    Common causes:
        - The login server URL is not a recognised ECR registry
        - The AWS CLI is not installed or has no usable credentials
    """


class PostProcessorError(ImageBuilderError):
    """Raised when a post-processor cannot handle the artifact it was given."""


class BuildfileError(ImageBuilderError):
    """Base class for Buildfile configuration errors.

    Buildfiles are TOML files that hold builder, provisioner and
    post-processor settings, optionally split into named environments.
    """


class BuildfileNotFoundError(BuildfileError):
    """Raised when a Buildfile cannot be located.

    The CLI searches for Buildfile, Buildfile.toml, buildfile or
    buildfile.toml in the current directory and its parents.

    What to check:
        - Ensure a Buildfile exists in your project
        - Run from within the project directory
        - Set the IMAGEBUILDER_FILE environment variable to an explicit path
    """


class BuildfileInvalidError(BuildfileError):
    """Raised when a Buildfile contains invalid TOML or an invalid layout."""


class BuildfileEnvironmentNotFoundError(BuildfileError):
    """Raised when a requested environment is missing from the Buildfile.

    Examples:
        >>> load_environment(env="producton")  # Typo!
        BuildfileEnvironmentNotFoundError: Environment 'producton' not defined in Buildfile
    """


class ProvisionerError(ImageBuilderError):
    """Raised when a provisioner is misconfigured or a command it runs fails."""

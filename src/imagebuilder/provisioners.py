"""
Provisioners configure the working container between run and commit.

Provisioners are declared as ``[[provisioners]]`` entries in a Buildfile and
are handed the communicator opened by the connect step.
"""

import abc
import logging
import os
import shlex
from typing import Any, List, Mapping, Optional, Sequence

from .communicator import DockerCommunicator, quote_powershell
from .errors import ValidationError

logger = logging.getLogger(__name__)


class Provisioner(abc.ABC):
    """Base class for provisioners."""

    type_name: str = ""

    @abc.abstractmethod
    def provision(self, communicator: DockerCommunicator) -> None:
        """Apply this provisioner inside the container."""


class ShellProvisioner(Provisioner):
    """
    Run shell commands inside the container.

    Inline commands run one by one, each in a fresh shell. Local scripts are
    uploaded into the container first and then executed. Any command that
    exits non-zero fails the build.
    """

    type_name = "shell"

    def __init__(
        self,
        inline: Sequence[str] = (),
        scripts: Sequence[str] = (),
        environment_vars: Optional[Mapping[str, str]] = None,
        remote_folder: str = "/tmp",
    ):
        self.inline = list(inline)
        self.scripts = list(scripts)
        self.environment_vars = dict(environment_vars or {})
        self.remote_folder = remote_folder

    @classmethod
    def from_config(cls, raw: Mapping[str, Any]) -> "ShellProvisioner":
        errors: List[str] = []
        allowed = {"type", "inline", "script", "scripts", "environment_vars", "remote_folder"}
        for key in raw:
            if key not in allowed:
                errors.append(f"unknown shell provisioner key {key!r}")

        inline = raw.get("inline", [])
        if isinstance(inline, str):
            inline = [inline]
        if not isinstance(inline, list) or not all(isinstance(c, str) for c in inline):
            errors.append("shell provisioner 'inline' must be a list of strings")
            inline = []

        scripts = raw.get("scripts", [])
        if isinstance(scripts, str):
            scripts = [scripts]
        if not isinstance(scripts, list):
            errors.append("shell provisioner 'scripts' must be a list of strings")
            scripts = []
        else:
            scripts = list(scripts)
        if raw.get("script"):
            scripts.insert(0, raw["script"])
        for script in scripts:
            if not isinstance(script, str) or not os.path.isfile(script):
                errors.append(f"shell provisioner script {script!r} is not a file")

        environment_vars = raw.get("environment_vars", {})
        if not isinstance(environment_vars, Mapping):
            errors.append("shell provisioner 'environment_vars' must be a table")
            environment_vars = {}

        if not inline and not scripts:
            errors.append("shell provisioner needs 'inline' commands or a 'script'")

        if errors:
            raise ValidationError(errors)

        return cls(
            inline=inline,
            scripts=scripts,
            environment_vars={str(k): str(v) for k, v in environment_vars.items()},
            remote_folder=str(raw.get("remote_folder", "/tmp")),
        )

    def _with_environment(self, command: str, windows: bool) -> str:
        if not self.environment_vars:
            return command
        if windows:
            prefix = "".join(
                f"$env:{key}={quote_powershell(value)}; "
                for key, value in self.environment_vars.items()
            )
            return prefix + command
        exports = " ".join(
            f"{key}={shlex.quote(value)}" for key, value in self.environment_vars.items()
        )
        return f"export {exports}; {command}"

    def provision(self, communicator: DockerCommunicator) -> None:
        windows = communicator.windows
        for command in self.inline:
            logger.info("Provisioning with shell: %s", command)
            communicator.run(self._with_environment(command, windows))

        for index, script in enumerate(self.scripts):
            remote_path = f"{self.remote_folder.rstrip('/')}/script_{index}_{os.path.basename(script)}"
            logger.info("Provisioning with shell script: %s", script)
            communicator.upload(script, remote_path)
            if windows:
                communicator.run(
                    self._with_environment(f"& {quote_powershell(remote_path)}", windows)
                )
            else:
                quoted = shlex.quote(remote_path)
                communicator.run(f"chmod +x {quoted}")
                communicator.run(self._with_environment(quoted, windows))


_PROVISIONER_TYPES = {
    ShellProvisioner.type_name: ShellProvisioner,
}


def create_provisioner(raw: Mapping[str, Any]) -> Provisioner:
    """Instantiate a provisioner from its Buildfile table."""

    provisioner_type = raw.get("type")
    factory = _PROVISIONER_TYPES.get(provisioner_type)
    if factory is None:
        raise ValidationError(
            [
                f"unknown provisioner type {provisioner_type!r}; expected one of "
                + ", ".join(sorted(_PROVISIONER_TYPES))
            ]
        )
    return factory.from_config(raw)


def create_provisioners(entries: Sequence[Mapping[str, Any]]) -> List[Provisioner]:
    provisioners: List[Provisioner] = []
    errors: List[Any] = []
    for entry in entries:
        try:
            provisioners.append(create_provisioner(entry))
        except ValidationError as exc:
            errors.extend(exc.errors)
    if errors:
        raise ValidationError(errors)
    return provisioners


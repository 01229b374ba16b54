"""Builder configuration: decoding, validation and derived defaults.

The raw configuration is a plain mapping, usually the ``builder`` table of a
Buildfile environment. :meth:`BuildConfig.prepare` decodes it, validates it
and fills in derived defaults exactly once. The result is frozen and is read
by every lifecycle step without further checks.
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..credentials import AwsAccessConfig
from ..errors import ConfigConflictError, MissingArtifactInstructionError, ValidationError

DEFAULT_EXECUTABLE = "docker"
LINUX_CONTAINER_DIR = "/imagebuilder-files"
WINDOWS_CONTAINER_DIR = "c:/imagebuilder-files"
LINUX_RUN_COMMAND = ("-d", "-i", "-t", "--entrypoint=/bin/sh", "--", "{{.Image}}")
WINDOWS_RUN_COMMAND = ("-d", "-i", "-t", "--entrypoint=powershell", "--", "{{.Image}}")

COMMUNICATOR_DOCKER = "docker"
COMMUNICATOR_WINDOWS = "dockerWindowsContainer"
COMMUNICATOR_NONE = "none"
COMMUNICATOR_TYPES = (COMMUNICATOR_DOCKER, COMMUNICATOR_WINDOWS, COMMUNICATOR_NONE)

_BUILDER_KEYS: Dict[str, str] = {
    "image": "str",
    "commit": "bool",
    "discard": "bool",
    "export_path": "str",
    "changes": "list",
    "author": "str",
    "message": "str",
    "docker_path": "str",
    "container_dir": "str",
    "device": "list",
    "cap_add": "list",
    "cap_drop": "list",
    "exec_user": "str",
    "privileged": "bool",
    "runtime": "str",
    "pull": "bool",
    "run_command": "list",
    "tmpfs": "list",
    "volumes": "map",
    "fix_upload_owner": "bool",
    "windows_container": "bool",
    "platform": "str",
    "login": "bool",
    "login_username": "str",
    "login_password": "str",
    "login_server": "str",
    "ecr_login": "bool",
    "aws_access_key": "str",
    "aws_secret_key": "str",
    "aws_token": "str",
    "aws_profile": "str",
    "communicator": "str",
    "build": "table",
}

_BOOTSTRAP_KEYS: Dict[str, str] = {
    "path": "str",
    "build_dir": "str",
    "arguments": "map",
    "platform": "str",
    "pull": "bool",
    "compress": "bool",
}


class TerminalActionKind(str, Enum):
    """What happens to the working container once provisioning is done."""

    COMMIT = "commit"
    DISCARD = "discard"
    EXPORT = "export"


@dataclass(frozen=True)
class TerminalAction:
    kind: TerminalActionKind
    export_path: Optional[str] = None

    @classmethod
    def commit(cls) -> "TerminalAction":
        return cls(TerminalActionKind.COMMIT)

    @classmethod
    def discard(cls) -> "TerminalAction":
        return cls(TerminalActionKind.DISCARD)

    @classmethod
    def export(cls, path: str) -> "TerminalAction":
        return cls(TerminalActionKind.EXPORT, export_path=path)

    def __str__(self) -> str:
        if self.kind is TerminalActionKind.EXPORT:
            return f"export to {self.export_path}"
        return self.kind.value


@dataclass(frozen=True)
class BootstrapConfig:
    """Builds the base image from a Dockerfile before the rest of the pipeline.

    Attributes:
        path: Path to the Dockerfile.
        build_dir: Build context directory, ``"."`` when omitted.
        arguments: Build arguments passed as ``--build-arg KEY=VALUE``.
        platform: Target platform of the build.
        pull: Whether to pull newer base images while building. ``None``
            means unset, which pulls.
        compress: Compress the build context before sending it.
    """

    path: str = ""
    build_dir: str = ""
    arguments: Dict[str, str] = field(default_factory=dict)
    platform: str = ""
    pull: Optional[bool] = None
    compress: bool = False

    def is_default(self) -> bool:
        return (
            not self.path
            and not self.build_dir
            and not self.arguments
            and not self.platform
            and self.pull is None
            and not self.compress
        )

    def prepare(self) -> "BootstrapConfig":
        """Validate the descriptor and return it with normalised paths.

        Raises:
            ValidationError: If the Dockerfile or build directory is unusable.
        """
        if self.is_default():
            return self

        build_dir = self.build_dir or "."

        if not os.path.exists(self.path):
            raise ValidationError([f"failed to stat file {self.path!r}: no such file"])
        if not os.path.isfile(self.path):
            raise ValidationError([f"dockerfile {self.path!r} is not a regular file"])
        dockerfile = os.path.abspath(self.path)

        if not os.path.exists(build_dir):
            raise ValidationError(
                [f"failed to stat build directory {build_dir!r}: no such directory"]
            )
        if not os.path.isdir(build_dir):
            raise ValidationError(
                [f"specified build_dir {build_dir!r} is not a directory"]
            )

        return replace(self, path=dockerfile, build_dir=build_dir)

    def build_args(self) -> List[str]:
        """Arguments for ``<engine> build``, build directory last."""

        args = ["-f", self.path]
        if self.platform:
            args.extend(["--platform", self.platform])
        if self.pull is not False:
            args.append("--pull")
        if self.compress:
            args.append("--compress")
        for key, value in self.arguments.items():
            args.extend(["--build-arg", f"{key}={value}"])
        args.append(self.build_dir)
        return args


@dataclass(frozen=True)
class BuildConfig:
    """Validated builder configuration.

    Construct it through :meth:`prepare`; the constructor performs no checks.
    """

    terminal_action: TerminalAction
    image: str = ""
    bootstrap: BootstrapConfig = field(default_factory=BootstrapConfig)
    changes: List[str] = field(default_factory=list)
    author: str = ""
    message: str = ""
    docker_path: str = DEFAULT_EXECUTABLE
    container_dir: str = LINUX_CONTAINER_DIR
    device: List[str] = field(default_factory=list)
    cap_add: List[str] = field(default_factory=list)
    cap_drop: List[str] = field(default_factory=list)
    exec_user: str = ""
    privileged: bool = False
    runtime: str = ""
    pull: bool = True
    run_command: List[str] = field(default_factory=lambda: list(LINUX_RUN_COMMAND))
    tmpfs: List[str] = field(default_factory=list)
    volumes: Dict[str, str] = field(default_factory=dict)
    fix_upload_owner: bool = True
    windows_container: bool = False
    platform: str = ""
    login: bool = False
    login_username: str = ""
    login_password: str = field(default="", repr=False)
    login_server: str = ""
    ecr_login: bool = False
    aws: AwsAccessConfig = field(default_factory=AwsAccessConfig)
    communicator: str = COMMUNICATOR_DOCKER

    @property
    def commit(self) -> bool:
        return self.terminal_action.kind is TerminalActionKind.COMMIT

    @property
    def discard(self) -> bool:
        return self.terminal_action.kind is TerminalActionKind.DISCARD

    @property
    def export_path(self) -> Optional[str]:
        return self.terminal_action.export_path

    @property
    def bootstrapped(self) -> bool:
        return not self.bootstrap.is_default()

    @classmethod
    def prepare(cls, raw: Mapping[str, Any]) -> Tuple["BuildConfig", List[str]]:
        """Decode, validate and default a raw configuration mapping.

        Every problem is collected before anything is reported, so a single
        call surfaces all defects of the configuration.

        Args:
            raw: The raw builder settings.

        Returns:
            The frozen configuration and any non-blocking warnings.

        Raises:
            ValidationError: If at least one problem was found.
        """
        errors: List[Any] = []
        warnings: List[str] = []

        values = decode_table(raw, _BUILDER_KEYS, "", errors)
        bootstrap_raw = values.pop("build", None)
        bootstrap = BootstrapConfig()
        if bootstrap_raw is not None:
            bootstrap_values = decode_table(bootstrap_raw, _BOOTSTRAP_KEYS, "build.", errors)
            bootstrap = BootstrapConfig(**bootstrap_values)

        windows = values.get("windows_container", False)

        if not values.get("run_command"):
            values["run_command"] = list(
                WINDOWS_RUN_COMMAND if windows else LINUX_RUN_COMMAND
            )
        if not values.get("docker_path"):
            values["docker_path"] = DEFAULT_EXECUTABLE
        if not values.get("communicator"):
            values["communicator"] = COMMUNICATOR_WINDOWS if windows else COMMUNICATOR_DOCKER
        if not values.get("container_dir"):
            values["container_dir"] = WINDOWS_CONTAINER_DIR if windows else LINUX_CONTAINER_DIR

        if not bootstrap.is_default():
            try:
                bootstrap = bootstrap.prepare()
            except ValidationError as exc:
                errors.extend(exc.errors)
            if values.get("image"):
                errors.append("`image` cannot be specified with a build config")
            if values.get("pull"):
                warnings.append(
                    "when running a bootstrap build, the `pull` option is ignored "
                    "and is replaced by `build.pull` (true by default)"
                )
            values["pull"] = False
            if values.get("platform"):
                errors.append(
                    "when running a bootstrap build, the `platform` option cannot "
                    "be specified (use `build.platform` instead)"
                )
            values["platform"] = bootstrap.platform
        else:
            # Only an explicit `pull` key may turn pulling off.
            if "pull" not in raw:
                values["pull"] = True
            if not values.get("image"):
                errors.append(
                    "missing 'image' attribute or 'build' section, either needs "
                    "to be specified for a build to run."
                )

        if values["communicator"] not in COMMUNICATOR_TYPES:
            errors.append(
                f"unknown communicator {values['communicator']!r}; expected one of "
                + ", ".join(COMMUNICATOR_TYPES)
            )

        terminal_action = _select_terminal_action(values, errors)

        export_path = values.pop("export_path", "")
        if export_path and os.path.isdir(export_path):
            errors.append("export_path must be a file, not a directory")

        if values.get("ecr_login") and not values.get("login_server"):
            errors.append("ECR login requires login server to be provided.")

        if errors:
            raise ValidationError(errors, warnings=warnings)

        values.pop("commit", None)
        values.pop("discard", None)
        aws = AwsAccessConfig(
            access_key=values.pop("aws_access_key", ""),
            secret_key=values.pop("aws_secret_key", ""),
            token=values.pop("aws_token", ""),
            profile=values.pop("aws_profile", ""),
        )
        config = cls(
            terminal_action=terminal_action,
            bootstrap=bootstrap,
            aws=aws,
            **values,
        )
        return config, warnings

    def describe(self) -> Dict[str, Any]:
        """Return the resolved settings as plain data, secrets masked."""

        data = asdict(self)
        data["terminal_action"] = str(self.terminal_action)
        if self.login_password:
            data["login_password"] = "********"
        for key in ("secret_key", "token"):
            if data["aws"].get(key):
                data["aws"][key] = "********"
        return data


def _select_terminal_action(
    values: Dict[str, Any], errors: List[Any]
) -> TerminalAction:
    commit = bool(values.get("commit"))
    discard = bool(values.get("discard"))
    export_path = values.get("export_path") or ""

    chosen = sum([commit, discard, bool(export_path)])
    if chosen > 1:
        errors.append(
            ConfigConflictError(
                "Cannot specify more than one of commit, discard, and export_path"
            )
        )
    elif chosen == 0:
        errors.append(
            MissingArtifactInstructionError(
                "No instructions given for handling the artifact; expected "
                "commit, discard, or export_path"
            )
        )

    if commit:
        return TerminalAction.commit()
    if discard:
        return TerminalAction.discard()
    return TerminalAction.export(export_path)


def decode_table(
    raw: Any,
    kinds: Mapping[str, str],
    prefix: str,
    errors: List[Any],
) -> Dict[str, Any]:
    if not isinstance(raw, Mapping):
        errors.append(f"{prefix.rstrip('.') or 'configuration'} must be a table")
        return {}

    values: Dict[str, Any] = {}
    for key, value in raw.items():
        kind = kinds.get(key)
        name = f"{prefix}{key}"
        if kind is None:
            errors.append(f"unknown configuration key {name!r}")
            continue
        try:
            values[key] = _COERCERS[kind](value)
        except (TypeError, ValueError) as exc:
            errors.append(f"{name!r} {exc}")
    return values


def _as_str(value: Any) -> str:
    if isinstance(value, str):
        return value
    raise TypeError(f"must be a string, got {type(value).__name__}")


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"false", "0", "no", "off"}:
            return False
        if lowered in {"true", "1", "yes", "on"}:
            return True
    raise TypeError(f"must be a boolean, got {value!r}")


def _as_list(value: Any) -> List[str]:
    if isinstance(value, str):
        return [value]
    if not isinstance(value, (list, tuple)):
        raise TypeError(f"must be a list of strings, got {type(value).__name__}")
    if not all(isinstance(item, str) for item in value):
        raise TypeError("must be a list of strings")
    return list(value)


def _as_map(value: Any) -> Dict[str, str]:
    if not isinstance(value, Mapping):
        raise TypeError(f"must be a table, got {type(value).__name__}")
    result: Dict[str, str] = {}
    for key, item in value.items():
        if isinstance(item, bool) or not isinstance(item, (str, int, float)):
            raise TypeError(f"value for {key!r} must be a string")
        result[str(key)] = str(item)
    return result


def _as_table(value: Any) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise TypeError(f"must be a table, got {type(value).__name__}")
    return value


_COERCERS = {
    "str": _as_str,
    "bool": _as_bool,
    "list": _as_list,
    "map": _as_map,
    "table": _as_table,
}

"""Loading and resolving Buildfile configuration.

A Buildfile is a TOML file holding a ``[default]`` environment and any number
of named environments. Named environments are deep-merged over the default.
Each environment holds a ``builder`` table and optional ``provisioners`` and
``post_processors`` arrays of tables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

try:  # pragma: no cover - import guard
    import tomllib  # type: ignore[attr-defined]
except ModuleNotFoundError:  # pragma: no cover - python <3.11 fallback
    import tomli as tomllib  # type: ignore[no-redef]

from .errors import (
    BuildfileEnvironmentNotFoundError,
    BuildfileInvalidError,
    BuildfileNotFoundError,
)

BUILDFILE_ENV_VAR = "IMAGEBUILDER_FILE"
ENVIRONMENT_ENV_VAR = "IMAGEBUILDER_ENV"
DEFAULT_BUILDFILE_NAMES = (
    "Buildfile",
    "Buildfile.toml",
    "buildfile",
    "buildfile.toml",
)

_ENVIRONMENT_KEYS = {"builder", "provisioners", "post_processors"}

# Builder keys holding paths, resolved relative to the Buildfile.
_PATH_KEYS = ("export_path",)
_BOOTSTRAP_PATH_KEYS = ("path", "build_dir")
_PROVISIONER_PATH_KEYS = ("script", "scripts")


@dataclass
class BuildfileEnvironment:
    """Resolved configuration for a specific Buildfile environment."""

    name: str
    path: Path
    builder: Dict[str, Any]
    provisioners: List[Dict[str, Any]] = field(default_factory=list)
    post_processors: List[Dict[str, Any]] = field(default_factory=list)


PathLike = Union[str, "os.PathLike[str]"]


def load_environment(
    buildfile: Optional[PathLike] = None,
    *,
    env: Optional[str] = None,
    start_dir: Optional[PathLike] = None,
) -> BuildfileEnvironment:
    """Load a Buildfile environment, merging it over the defaults."""

    resolved_path = resolve_buildfile_path(buildfile, start_dir=start_dir)
    raw_data = _read_toml(resolved_path)
    root_table = _extract_root_table(raw_data)

    env_name = (env or os.getenv(ENVIRONMENT_ENV_VAR) or "default").strip() or "default"
    resolved = _resolve_environment_config(root_table, env_name)

    unknown = sorted(set(resolved) - _ENVIRONMENT_KEYS)
    if unknown:
        raise BuildfileInvalidError(
            f"Unknown section(s) in environment '{env_name}': {', '.join(unknown)}. "
            f"Expected {', '.join(sorted(_ENVIRONMENT_KEYS))}."
        )

    builder = resolved.get("builder")
    if not isinstance(builder, dict):
        raise BuildfileInvalidError(
            f"Environment '{env_name}' must define a [builder] table."
        )

    base_dir = resolved_path.parent
    return BuildfileEnvironment(
        name=env_name,
        path=resolved_path,
        builder=_resolve_paths(builder, base_dir),
        provisioners=[
            _resolve_provisioner_paths(entry, base_dir)
            for entry in _table_array(resolved, "provisioners")
        ],
        post_processors=_table_array(resolved, "post_processors"),
    )


def resolve_buildfile_path(
    buildfile: Optional[PathLike] = None,
    *,
    start_dir: Optional[PathLike] = None,
) -> Path:
    """Determine which Buildfile to use, respecting explicit hints and discovery."""

    if buildfile is not None:
        return _normalize_buildfile_path(Path(buildfile))

    env_path = os.getenv(BUILDFILE_ENV_VAR)
    if env_path:
        return _normalize_buildfile_path(Path(env_path))

    return discover_buildfile(start_dir=start_dir)


def discover_buildfile(start_dir: Optional[PathLike] = None) -> Path:
    """Search upwards from ``start_dir`` (or ``cwd``) for a Buildfile."""

    start_candidate = Path(start_dir) if start_dir is not None else Path.cwd()
    start_candidate = start_candidate.expanduser()
    try:
        start_candidate = start_candidate.resolve()
    except FileNotFoundError:
        start_candidate = start_candidate.absolute()

    for directory in (start_candidate,) + tuple(start_candidate.parents):
        for name in DEFAULT_BUILDFILE_NAMES:
            candidate = directory / name
            if candidate.is_file():
                return candidate

    raise BuildfileNotFoundError(
        f"No Buildfile found starting from '{start_candidate}'. Checked {DEFAULT_BUILDFILE_NAMES}."
    )


def list_environments(buildfile: Optional[PathLike] = None) -> List[str]:
    """Return the environment names defined in a Buildfile."""

    root_table = _extract_root_table(_read_toml(resolve_buildfile_path(buildfile)))
    return [name for name, value in root_table.items() if isinstance(value, dict)]


def _normalize_buildfile_path(path: Path) -> Path:
    expanded = path.expanduser()
    if expanded.is_dir():
        for name in DEFAULT_BUILDFILE_NAMES:
            candidate = expanded / name
            if candidate.is_file():
                return candidate
        raise BuildfileNotFoundError(
            f"Buildfile not found inside directory '{expanded}'. Checked {DEFAULT_BUILDFILE_NAMES}."
        )
    if expanded.is_file():
        return expanded
    raise BuildfileNotFoundError(f"Buildfile path '{expanded}' does not exist.")


def _read_toml(path: Path) -> Dict[str, Any]:
    try:
        with path.open("rb") as handle:
            data = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise BuildfileInvalidError(f"Invalid TOML in Buildfile '{path}': {exc}") from exc
    return data


def _extract_root_table(data: Dict[str, Any]) -> Dict[str, Any]:
    tool_section = data.get("tool")
    if isinstance(tool_section, dict):
        section = tool_section.get("imagebuilder")
        if isinstance(section, dict):
            return section
    return data


def _resolve_environment_config(
    root_table: Dict[str, Any],
    env_name: str,
) -> Dict[str, Any]:
    result: Dict[str, Any] = {}

    root_default = root_table.get("default")
    if root_default:
        if not isinstance(root_default, dict):
            raise BuildfileInvalidError("[default] section must be a table.")
        result = _deep_merge(result, root_default)

    if env_name != "default":
        env_config = root_table.get(env_name)
        if env_config is None:
            raise BuildfileEnvironmentNotFoundError(
                f"Environment '{env_name}' not defined in Buildfile."
            )
        if not isinstance(env_config, dict):
            raise BuildfileInvalidError(
                f"Environment '{env_name}' section must be a table."
            )
        result = _deep_merge(result, env_config)

    return result


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _table_array(resolved: Dict[str, Any], key: str) -> List[Dict[str, Any]]:
    entries = resolved.get(key, [])
    if not isinstance(entries, list) or not all(isinstance(e, dict) for e in entries):
        raise BuildfileInvalidError(f"{key} must be an array of tables ([[{key}]]).")
    for entry in entries:
        if not isinstance(entry.get("type"), str):
            raise BuildfileInvalidError(f"Every entry in {key} needs a 'type'.")
    return [dict(entry) for entry in entries]


def _resolve_paths(builder: Dict[str, Any], base_dir: Path) -> Dict[str, Any]:
    resolved = dict(builder)
    for key in _PATH_KEYS:
        resolved[key] = _relative_to(resolved.get(key), base_dir)

    bootstrap = resolved.get("build")
    if isinstance(bootstrap, dict):
        bootstrap = dict(bootstrap)
        for key in _BOOTSTRAP_PATH_KEYS:
            bootstrap[key] = _relative_to(bootstrap.get(key), base_dir)
        # The build context defaults to the directory holding the Buildfile.
        if bootstrap.get("path") and not bootstrap.get("build_dir"):
            bootstrap["build_dir"] = str(base_dir)
        resolved["build"] = {k: v for k, v in bootstrap.items() if v is not None}
    return {k: v for k, v in resolved.items() if v is not None}


def _relative_to(value: Any, base_dir: Path) -> Any:
    if not isinstance(value, str) or not value:
        return value
    path = Path(value).expanduser()
    if path.is_absolute():
        return str(path)
    return str(base_dir / path)


def _resolve_provisioner_paths(entry: Dict[str, Any], base_dir: Path) -> Dict[str, Any]:
    resolved = dict(entry)
    for key in _PROVISIONER_PATH_KEYS:
        value = resolved.get(key)
        if isinstance(value, list):
            resolved[key] = [_relative_to(item, base_dir) for item in value]
        elif value is not None:
            resolved[key] = _relative_to(value, base_dir)
    return resolved

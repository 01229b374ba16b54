"""Engine version parsing and version-gated CLI behaviour."""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import total_ordering
from typing import Optional, Tuple

from ..errors import EngineVersionError

# Tolerant: picks the first version-looking substring out of free text such as
# "Docker version 24.0.7, build afdd53b" or "podman version 4.9.3".
_VERSION_RE = re.compile(
    r"v?(?P<major>\d+)\.(?P<minor>\d+)(?:\.(?P<patch>\d+))?"
    r"(?:-(?P<prerelease>[0-9A-Za-z\-~]+(?:\.[0-9A-Za-z\-~]+)*))?"
    r"(?:\+(?P<build>[0-9A-Za-z\-~]+(?:\.[0-9A-Za-z\-~]+)*))?"
)


@total_ordering
@dataclass(frozen=True)
class SemanticVersion:
    """A parsed engine version. Pre-releases sort before their release."""

    major: int
    minor: int = 0
    patch: int = 0
    prerelease: Optional[str] = None

    @classmethod
    def parse(cls, text: str) -> "SemanticVersion":
        match = _VERSION_RE.search(text or "")
        if not match:
            raise EngineVersionError(f"unknown version: {text!r}")
        return cls(
            major=int(match.group("major")),
            minor=int(match.group("minor")),
            patch=int(match.group("patch") or 0),
            prerelease=match.group("prerelease"),
        )

    def _key(self) -> Tuple[int, int, int, int, Tuple]:
        if self.prerelease is None:
            return (self.major, self.minor, self.patch, 1, ())
        parts = tuple(
            (0, int(part), "") if part.isdigit() else (1, 0, part)
            for part in self.prerelease.split(".")
        )
        return (self.major, self.minor, self.patch, 0, parts)

    def __lt__(self, other: "SemanticVersion") -> bool:
        if not isinstance(other, SemanticVersion):
            return NotImplemented
        return self._key() < other._key()

    def __str__(self) -> str:
        core = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            return f"{core}-{self.prerelease}"
        return core


# `login --password-stdin` was introduced in Docker 17.07.0.
PASSWORD_STDIN_SINCE = SemanticVersion(17, 7, 0)

# `tag -f` was removed in Docker 1.12.0.
FORCE_TAG_REMOVED_IN = SemanticVersion(1, 12, 0)


def supports_password_stdin(version: SemanticVersion) -> bool:
    return version >= PASSWORD_STDIN_SINCE


def supports_force_tag(version: SemanticVersion) -> bool:
    return version < FORCE_TAG_REMOVED_IN

"""
Base module for container engine drivers.

This module defines the abstract base class for all engine drivers,
providing a common interface for turning builder operations into
container engine invocations.
"""

import abc
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import BinaryIO, Dict, Iterator, List, Optional

from ..errors import EngineError
from .version import SemanticVersion

logger = logging.getLogger(__name__)

# Returned by the cmd/entrypoint inspections when the image has none. An array
# holding one empty string clears the value on commit, while `null` or `[]`
# would be treated as "leave unchanged".
EMPTY_ARRAY_SENTINEL = '[""]'

IP_ADDRESS_TEMPLATE = "{{ .NetworkSettings.IPAddress }}"
SHA256_TEMPLATE = "{{ .Id }}"
DIGEST_TEMPLATE = "{{ ( index .RepoDigests 0 ) }}"
CMD_TEMPLATE = '{{if .Config.Cmd}} {{json .Config.Cmd}} {{else}} [""] {{end}}'
ENTRYPOINT_TEMPLATE = (
    '{{if .Config.Entrypoint}} {{json .Config.Entrypoint}} {{else}} [""] {{end}}'
)


@dataclass
class ContainerConfig:
    """Everything needed to start the working container."""

    image: str
    run_command: List[str]
    volumes: Dict[str, str] = field(default_factory=dict)
    device: List[str] = field(default_factory=list)
    cap_add: List[str] = field(default_factory=list)
    cap_drop: List[str] = field(default_factory=list)
    tmpfs: List[str] = field(default_factory=list)
    privileged: bool = False
    runtime: Optional[str] = None
    platform: Optional[str] = None


class EngineDriver(abc.ABC):
    """
    Abstract base class for container engine drivers.

    Concrete implementations are the :class:`DockerDriver`, which shells out
    to an installed engine CLI, and the :class:`MockDriver`, which records
    calls for tests.
    """

    @abc.abstractmethod
    def build(self, args: List[str]) -> str:
        """Build an image and return its identifier."""

    @abc.abstractmethod
    def delete_image(self, image_id: str) -> None:
        """Remove an image."""

    @abc.abstractmethod
    def commit(
        self,
        container_id: str,
        author: str,
        changes: List[str],
        message: str,
    ) -> str:
        """Commit a container to a new image and return the image identifier."""

    @abc.abstractmethod
    def export(self, container_id: str, sink: BinaryIO) -> None:
        """Stream the container filesystem as a tar archive into ``sink``."""

    @abc.abstractmethod
    def import_tarball(
        self,
        path: str,
        changes: List[str],
        repo: str,
        platform: Optional[str] = None,
    ) -> str:
        """Import a tar archive as an image and return the image identifier."""

    @abc.abstractmethod
    def inspect_field(self, object_id: str, template: str) -> str:
        """Return one templated field of ``<engine> inspect``."""

    @abc.abstractmethod
    def login(self, server: str, username: str, password: str) -> None:
        """
        Log in to a registry.

        A successful login holds the driver's session lock until the matching
        :meth:`logout`; prefer :meth:`logged_in`, which guarantees the pairing.
        """

    @abc.abstractmethod
    def logout(self, server: str) -> None:
        """Log out of a registry and release the session lock."""

    @abc.abstractmethod
    def pull(self, image: str, platform: Optional[str] = None) -> None:
        """Pull an image, streaming progress to the log."""

    @abc.abstractmethod
    def push(self, name: str, platform: Optional[str] = None) -> None:
        """Push an image, streaming progress to the log."""

    @abc.abstractmethod
    def save_image(self, image_id: str, sink: BinaryIO) -> None:
        """Stream an image as a tar archive into ``sink``."""

    @abc.abstractmethod
    def start_container(self, config: ContainerConfig) -> str:
        """Start the working container and return its identifier."""

    @abc.abstractmethod
    def stop_container(self, container_id: str) -> None:
        """Stop a running container."""

    @abc.abstractmethod
    def kill_container(self, container_id: str) -> None:
        """Kill a container and remove it."""

    @abc.abstractmethod
    def tag_image(self, image_id: str, repo: str, force: bool = False) -> None:
        """Tag an image under ``repo``."""

    @abc.abstractmethod
    def verify(self) -> None:
        """Fail fast if the engine cannot be used at all."""

    @abc.abstractmethod
    def version(self) -> SemanticVersion:
        """Return the engine version."""

    def ip_address(self, container_id: str) -> str:
        return self.inspect_field(container_id, IP_ADDRESS_TEMPLATE)

    def sha256(self, image_id: str) -> str:
        """Return the content hash (``sha256:...``) of an image."""
        return self.inspect_field(image_id, SHA256_TEMPLATE)

    def digest(self, image_id: str) -> str:
        """Return the distribution digest (``repo@sha256:...``) of an image.

        This only exists once the image has been pushed to, or pulled from, a
        registry.
        """
        return self.inspect_field(image_id, DIGEST_TEMPLATE)

    def cmd(self, image_id: str) -> str:
        return self.inspect_field(image_id, CMD_TEMPLATE)

    def entrypoint(self, image_id: str) -> str:
        return self.inspect_field(image_id, ENTRYPOINT_TEMPLATE)

    @contextmanager
    def logged_in(self, server: str, username: str, password: str) -> Iterator[None]:
        """Hold a registry session for the duration of the ``with`` block."""

        self.login(server, username, password)
        try:
            yield
        finally:
            logger.info("Logging out of %s", server or "default registry")
            try:
                self.logout(server)
            except EngineError as exc:
                logger.error("Error logging out: %s", exc)

"""
Recording engine driver.

`MockDriver` never starts a process. Every call is appended to ``calls`` and
answered from configurable attributes, which makes it the driver of choice
for exercising steps, the builder and post-processors without an engine.
"""

from dataclasses import dataclass, field
from typing import Any, BinaryIO, Dict, List, Optional, Tuple

from ..errors import EngineError
from .base import ContainerConfig, EngineDriver
from .version import SemanticVersion


@dataclass
class MockDriver(EngineDriver):
    """Engine driver double that records calls and returns canned results.

    Set ``errors["<method>"]`` to an exception to make that method raise it.
    Inspection answers come from ``inspect_results`` keyed by
    ``(object_id, template)``; unknown keys fall back to ``inspect_default``.
    """

    build_image_id: str = "1234567890abcdef"
    commit_image_id: str = "1234567890abcdef"
    import_image_id: str = "sha256:imported"
    container_id: str = "abcdef0123456789"
    engine_version: SemanticVersion = field(
        default_factory=lambda: SemanticVersion(24, 0, 7)
    )
    export_payload: bytes = b"exported-filesystem"
    save_payload: bytes = b"saved-image"
    inspect_results: Dict[Tuple[str, str], str] = field(default_factory=dict)
    inspect_default: str = ""
    errors: Dict[str, BaseException] = field(default_factory=dict)

    calls: List[Tuple[str, Tuple[Any, ...]]] = field(default_factory=list)
    logged_in_servers: List[str] = field(default_factory=list)
    session_open: bool = False

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        error = self.errors.get(name)
        if error is not None:
            raise error

    def called(self, name: str) -> bool:
        return any(call == name for call, _ in self.calls)

    def calls_to(self, name: str) -> List[Tuple[Any, ...]]:
        return [args for call, args in self.calls if call == name]

    def build(self, args: List[str]) -> str:
        self._record("build", list(args))
        return self.build_image_id

    def delete_image(self, image_id: str) -> None:
        self._record("delete_image", image_id)

    def commit(
        self,
        container_id: str,
        author: str,
        changes: List[str],
        message: str,
    ) -> str:
        self._record("commit", container_id, author, list(changes), message)
        return self.commit_image_id

    def export(self, container_id: str, sink: BinaryIO) -> None:
        self._record("export", container_id)
        sink.write(self.export_payload)

    def import_tarball(
        self,
        path: str,
        changes: List[str],
        repo: str,
        platform: Optional[str] = None,
    ) -> str:
        self._record("import_tarball", path, list(changes), repo, platform)
        return self.import_image_id

    def inspect_field(self, object_id: str, template: str) -> str:
        self._record("inspect_field", object_id, template)
        return self.inspect_results.get((object_id, template), self.inspect_default)

    def login(self, server: str, username: str, password: str) -> None:
        if self.session_open:
            raise EngineError("login called while another session is open")
        self._record("login", server, username, password)
        self.session_open = True
        self.logged_in_servers.append(server)

    def logout(self, server: str) -> None:
        try:
            self._record("logout", server)
        finally:
            self.session_open = False

    def pull(self, image: str, platform: Optional[str] = None) -> None:
        self._record("pull", image, platform)

    def push(self, name: str, platform: Optional[str] = None) -> None:
        self._record("push", name, platform)

    def save_image(self, image_id: str, sink: BinaryIO) -> None:
        self._record("save_image", image_id)
        sink.write(self.save_payload)

    def start_container(self, config: ContainerConfig) -> str:
        self._record("start_container", config)
        return self.container_id

    def stop_container(self, container_id: str) -> None:
        self._record("stop_container", container_id)

    def kill_container(self, container_id: str) -> None:
        self._record("kill_container", container_id)

    def tag_image(self, image_id: str, repo: str, force: bool = False) -> None:
        self._record("tag_image", image_id, repo, force)

    def verify(self) -> None:
        self._record("verify")

    def version(self) -> SemanticVersion:
        self._record("version")
        return self.engine_version

"""
Docker engine driver.

This module provides the driver that turns builder operations into
invocations of an installed Docker-compatible CLI (``docker`` by default,
``podman`` and friends via ``docker_path``).
"""

import io
import logging
import os
import re
import shlex
import shutil
import subprocess  # nosec B404 - the engine CLI is the only way we talk to docker
import tempfile
import threading
from typing import BinaryIO, List, Optional, Tuple

from rich.console import Console

from ..errors import EngineCommandError, EngineError, EngineNotFoundError
from ..ui import live_output
from .base import ContainerConfig, EngineDriver
from .version import SemanticVersion, supports_force_tag, supports_password_stdin

logger = logging.getLogger(__name__)

_IMAGE_PLACEHOLDER_RE = re.compile(r"\{\{\s*\.Image\s*\}\}")
_ANY_PLACEHOLDER_RE = re.compile(r"\{\{.*?\}\}")
_REDACTED = "********"


class DockerDriver(EngineDriver):
    """
    Engine driver that shells out to the Docker CLI.

    A single driver is created per build and shared by every step. Registry
    sessions are serialised: :meth:`login` acquires a lock that only the
    matching :meth:`logout` releases.
    """

    def __init__(
        self,
        executable: str = "docker",
        *,
        console: Optional[Console] = None,
    ):
        """
        Initialize the driver.

        Args:
            executable: The engine executable to run commands with.
            console: Optional Rich console used to render live progress.
        """
        self.executable = executable
        self.console = console
        self._session_lock = threading.Lock()
        self._version: Optional[SemanticVersion] = None

    def _run(
        self,
        cmd: List[str],
        *,
        description: str,
        input: Optional[str] = None,
        redact: Optional[str] = None,
    ) -> str:
        """
        Run an engine command to completion and return its stripped stdout.

        Raises:
            EngineCommandError: If the command exits with a non-zero status.
        """
        logged = [_REDACTED if redact and part == redact else part for part in cmd]
        logger.debug("Running engine command: %s", shlex.join(logged))

        try:
            result = subprocess.run(
                cmd,
                input=input,
                capture_output=True,
                text=True,
            )
        except OSError as exc:
            raise EngineError(f"Failed to execute {self.executable}: {exc}") from exc

        if result.returncode != 0:
            raise EngineCommandError(
                f"Error {description}",
                command=logged,
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        return result.stdout.strip()

    def _run_and_stream(self, cmd: List[str], *, description: str) -> None:
        """Run a long-lived command, forwarding its combined output line by line."""

        logger.debug("Running engine command: %s", shlex.join(cmd))
        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                bufsize=1,
            )
        except OSError as exc:
            raise EngineError(f"Failed to execute {self.executable}: {exc}") from exc

        output_lines: List[str] = []
        with live_output(self.console, description) as show:
            assert process.stdout is not None
            for raw_line in process.stdout:
                line = raw_line.rstrip()
                output_lines.append(line)
                show(line)
            return_code = process.wait()
            if return_code:
                raise EngineCommandError(
                    f"Error running {description}",
                    command=cmd,
                    returncode=return_code,
                    stdout="\n".join(output_lines),
                )

    def _run_to_sink(self, cmd: List[str], sink: BinaryIO, *, description: str) -> None:
        logger.debug("Running engine command: %s", shlex.join(cmd))
        try:
            sink.fileno()
            direct = True
        except (AttributeError, io.UnsupportedOperation):
            direct = False

        try:
            if direct:
                sink.flush()
                result = subprocess.run(cmd, stdout=sink, stderr=subprocess.PIPE)
                stderr = result.stderr
                return_code = result.returncode
            else:
                process = subprocess.Popen(
                    cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE
                )
                stderr, return_code = _copy_stdout(process, sink)
        except OSError as exc:
            raise EngineError(f"Failed to execute {self.executable}: {exc}") from exc

        if return_code != 0:
            raise EngineCommandError(
                f"Error {description}",
                command=cmd,
                returncode=return_code,
                stderr=stderr.decode("utf-8", errors="replace"),
            )

    def build(self, args: List[str]) -> str:
        # The image ID comes from --iidfile: build output is log text, not data.
        fd, iidfile = tempfile.mkstemp(prefix="imagebuilder-iid-")
        os.close(fd)
        try:
            cmd = [self.executable, "build", "--iidfile", iidfile, *args]
            self._run(cmd, description="building image")
            with open(iidfile, "r", encoding="utf-8") as handle:
                image_id = handle.read().strip()
        finally:
            try:
                os.remove(iidfile)
            except OSError:
                logger.debug("Could not remove image ID file %s", iidfile)

        if not image_id:
            raise EngineError(f"Failed to read image ID from file {iidfile!r}")
        return image_id

    def delete_image(self, image_id: str) -> None:
        logger.info("Deleting image: %s", image_id)
        self._run([self.executable, "rmi", image_id], description="deleting image")

    def commit(
        self,
        container_id: str,
        author: str,
        changes: List[str],
        message: str,
    ) -> str:
        cmd = [self.executable, "commit"]
        if author:
            cmd.extend(["--author", author])
        for change in changes:
            cmd.extend(["--change", change])
        if message:
            cmd.extend(["--message", message])
        cmd.append(container_id)
        return self._run(cmd, description="committing container")

    def export(self, container_id: str, sink: BinaryIO) -> None:
        logger.info("Exporting container: %s", container_id)
        self._run_to_sink(
            [self.executable, "export", container_id],
            sink,
            description="exporting container",
        )

    def save_image(self, image_id: str, sink: BinaryIO) -> None:
        logger.info("Saving image: %s", image_id)
        self._run_to_sink(
            [self.executable, "save", image_id], sink, description="saving image"
        )

    def import_tarball(
        self,
        path: str,
        changes: List[str],
        repo: str,
        platform: Optional[str] = None,
    ) -> str:
        cmd = [self.executable, "import"]
        for change in changes:
            cmd.extend(["--change", change])
        if platform:
            cmd.extend(["--platform", platform])
        cmd.extend(["-", repo])

        logger.debug("Running engine command: %s", shlex.join(cmd))
        # The engine reads the archive straight from the open file.
        try:
            with open(path, "rb") as archive:
                result = subprocess.run(cmd, stdin=archive, capture_output=True)
        except OSError as exc:
            raise EngineError(f"Failed to import {path!r}: {exc}") from exc

        return_code = result.returncode
        stdout = result.stdout.decode("utf-8", errors="replace")
        stderr = result.stderr.decode("utf-8", errors="replace")
        if return_code != 0:
            raise EngineCommandError(
                "Error importing container",
                command=cmd,
                returncode=return_code,
                stdout=stdout,
                stderr=stderr,
            )
        return stdout.strip()

    def inspect_field(self, object_id: str, template: str) -> str:
        value = self._run(
            [self.executable, "inspect", "--format", template, object_id],
            description=f"inspecting {object_id}",
        )
        return value

    def login(self, server: str, username: str, password: str) -> None:
        self._session_lock.acquire()
        try:
            cmd = [self.executable, "login"]
            stdin: Optional[str] = None
            redact: Optional[str] = None
            if username:
                cmd.extend(["-u", username])
            if password:
                if supports_password_stdin(self.version()):
                    cmd.append("--password-stdin")
                    stdin = password
                else:
                    cmd.extend(["-p", password])
                    redact = password
            if server:
                cmd.append(server)
            self._run(cmd, description="logging in", input=stdin, redact=redact)
        except BaseException:
            self._session_lock.release()
            raise

    def logout(self, server: str) -> None:
        try:
            cmd = [self.executable, "logout"]
            if server:
                cmd.append(server)
            self._run(cmd, description="logging out")
        finally:
            if self._session_lock.locked():
                self._session_lock.release()

    def pull(self, image: str, platform: Optional[str] = None) -> None:
        cmd = [self.executable, "pull", image]
        if platform:
            cmd.extend(["--platform", platform])
        self._run_and_stream(cmd, description="pull")

    def push(self, name: str, platform: Optional[str] = None) -> None:
        cmd = [self.executable, "push", name]
        if platform:
            cmd.extend(["--platform", platform])
        self._run_and_stream(cmd, description="push")

    def start_container(self, config: ContainerConfig) -> str:
        args: List[str] = ["run"]
        for device in config.device:
            args.extend(["--device", device])
        for capability in config.cap_add:
            args.extend(["--cap-add", capability])
        for capability in config.cap_drop:
            args.extend(["--cap-drop", capability])
        if config.privileged:
            args.append("--privileged")
        if config.runtime:
            args.extend(["--runtime", config.runtime])
        if config.platform:
            args.extend(["--platform", config.platform])
        for mount in config.tmpfs:
            args.extend(["--tmpfs", mount])
        for host, guest in config.volumes.items():
            if host.startswith("~/"):
                host = os.path.join(os.path.expanduser("~"), host[2:])
            args.extend(["-v", f"{host}:{guest}"])
        args.extend(render_run_command(config.run_command, image=config.image))

        logger.info("Run command: %s %s", self.executable, " ".join(args))
        container_id = self._run(
            [self.executable, *args], description="starting container"
        )
        if not container_id:
            raise EngineError("Engine did not report a container ID")
        return container_id

    def stop_container(self, container_id: str) -> None:
        self._run([self.executable, "stop", container_id], description="stopping container")

    def kill_container(self, container_id: str) -> None:
        self._run([self.executable, "kill", container_id], description="killing container")
        self._run([self.executable, "rm", container_id], description="removing container")

    def tag_image(self, image_id: str, repo: str, force: bool = False) -> None:
        cmd = [self.executable, "tag"]
        if force:
            if supports_force_tag(self.version()):
                cmd.append("-f")
            else:
                logger.warning(
                    "Option 'force' is ignored: it was removed in Docker 1.12.0"
                )
        cmd.extend([image_id, repo])
        self._run(cmd, description="tagging image")

    def verify(self) -> None:
        if shutil.which(self.executable) is None:
            raise EngineNotFoundError(
                f"Container engine '{self.executable}' was not found in your PATH.\n\n"
                "To fix this:\n"
                "  1. Install Docker: https://docs.docker.com/get-docker/\n"
                "  2. Ensure the command is in your PATH (try: which docker)\n"
                "  3. Or set docker_path to the engine executable"
            )

    def version(self) -> SemanticVersion:
        if self._version is None:
            output = self._run([self.executable, "-v"], description="reading version")
            self._version = SemanticVersion.parse(output)
            logger.debug("Engine version: %s", self._version)
        return self._version


def _copy_stdout(process: subprocess.Popen, sink: BinaryIO) -> Tuple[bytes, int]:
    """Copy a process's stdout into ``sink`` while stderr drains on a thread."""

    chunks: List[bytes] = []

    def _drain() -> None:
        if process.stderr is not None:
            chunks.append(process.stderr.read())

    reader = threading.Thread(target=_drain, name="engine-stderr", daemon=True)
    reader.start()
    try:
        if process.stdout is not None:
            shutil.copyfileobj(process.stdout, sink)
    finally:
        return_code = process.wait()
        reader.join()
    return b"".join(chunks), return_code


def render_run_command(run_command: List[str], *, image: str) -> List[str]:
    """Expand ``{{.Image}}`` in a run-command template.

    Raises:
        EngineError: If the template uses any other placeholder.
    """

    rendered: List[str] = []
    for part in run_command:
        value = _IMAGE_PLACEHOLDER_RE.sub(lambda _match: image, part)
        leftover = _ANY_PLACEHOLDER_RE.search(value)
        if leftover:
            raise EngineError(
                f"Unsupported run_command placeholder {leftover.group(0)!r}; "
                "only {{.Image}} is available"
            )
        rendered.append(value)
    return rendered


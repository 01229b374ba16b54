"""
Command execution and file transfer into the working container.

Provisioners talk to the container through a communicator. The docker
communicator runs ``<engine> exec`` and moves files through the host
directory that the run step mounts into the container.
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess  # nosec B404 - commands are executed through the engine CLI
import uuid
from typing import List, Optional

from .errors import ProvisionerError

logger = logging.getLogger(__name__)


class DockerCommunicator:
    """Run commands inside a running container via ``<engine> exec``."""

    def __init__(
        self,
        executable: str,
        container_id: str,
        *,
        host_dir: str,
        container_dir: str,
        exec_user: str = "",
        windows: bool = False,
        fix_upload_owner: bool = True,
    ):
        self.executable = executable
        self.container_id = container_id
        self.host_dir = host_dir
        self.container_dir = container_dir
        self.exec_user = exec_user
        self.windows = windows
        self.fix_upload_owner = fix_upload_owner
        self.closed = False

    def exec_command(self, command: str, *, user: Optional[str] = None) -> List[str]:
        cmd = [self.executable, "exec"]
        effective_user = self.exec_user if user is None else user
        if effective_user:
            cmd.extend(["-u", effective_user])
        cmd.append(self.container_id)
        if self.windows:
            cmd.extend(["powershell", "-Command", command])
        else:
            cmd.extend(["/bin/sh", "-c", command])
        return cmd

    def start(self, command: str, *, user: Optional[str] = None) -> int:
        """Run ``command`` in the container and return its exit status."""

        if self.closed:
            raise ProvisionerError("communicator is closed")

        cmd = self.exec_command(command, user=user)
        logger.debug("Executing in container: %s", shlex.join(cmd))
        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                bufsize=1,
            )
        except OSError as exc:
            raise ProvisionerError(f"Failed to execute {self.executable}: {exc}") from exc
        assert process.stdout is not None
        for raw_line in process.stdout:
            logger.info("[container] %s", raw_line.rstrip())
        return process.wait()

    def run(self, command: str, *, user: Optional[str] = None) -> None:
        exit_status = self.start(command, user=user)
        if exit_status != 0:
            raise ProvisionerError(
                f"Command exited with non-zero status {exit_status}: {command}"
            )

    def upload(self, source: str, destination: str) -> None:
        """Copy a host file to ``destination`` inside the container.

        The file is staged in the mounted host directory and copied into
        place from within the container.
        """
        staged_name = f"{uuid.uuid4().hex}-{os.path.basename(source)}"
        shutil.copyfile(source, os.path.join(self.host_dir, staged_name))
        staged = f"{self.container_dir.rstrip('/')}/{staged_name}"

        if self.windows:
            self.run(
                f"Copy-Item -Force -Path {quote_powershell(staged)} "
                f"-Destination {quote_powershell(destination)}"
            )
            return

        self.run(
            f"cp {shlex.quote(staged)} {shlex.quote(destination)}",
            user="root" if self.exec_user else None,
        )
        if self.fix_upload_owner and self.exec_user:
            self.run(
                f"chown -R {shlex.quote(self.exec_user)} {shlex.quote(destination)}",
                user="root",
            )

    def close(self) -> None:
        self.closed = True


def quote_powershell(value: str) -> str:
    """Quote ``value`` as a single-quoted PowerShell string literal."""
    return "'" + value.replace("'", "''") + "'"

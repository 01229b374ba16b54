"""Shell provisioner and docker communicator."""

import os
from unittest.mock import MagicMock, patch

import pytest

from imagebuilder.communicator import DockerCommunicator
from imagebuilder.errors import ProvisionerError, ValidationError
from imagebuilder.provisioners import ShellProvisioner, create_provisioner, create_provisioners


class FakeCommunicator:
    def __init__(self, windows=False):
        self.windows = windows
        self.commands = []
        self.uploads = []

    def run(self, command, *, user=None):
        self.commands.append(command)

    def upload(self, source, destination):
        self.uploads.append((source, destination))


def _process(lines, returncode):
    process = MagicMock()
    process.stdout = iter(lines)
    process.wait.return_value = returncode
    return process


# Configuration


def test_inline_string_becomes_list():
    provisioner = create_provisioner({"type": "shell", "inline": "apt-get update"})

    assert isinstance(provisioner, ShellProvisioner)
    assert provisioner.inline == ["apt-get update"]


def test_script_and_scripts_are_combined(tmp_path):
    first = tmp_path / "first.sh"
    second = tmp_path / "second.sh"
    first.write_text("echo 1\n")
    second.write_text("echo 2\n")

    provisioner = ShellProvisioner.from_config(
        {"type": "shell", "script": str(first), "scripts": [str(second)]}
    )

    assert provisioner.scripts == [str(first), str(second)]


def test_shell_provisioner_needs_work():
    with pytest.raises(ValidationError, match="needs 'inline' commands or a 'script'"):
        ShellProvisioner.from_config({"type": "shell"})


def test_missing_script_is_reported(tmp_path):
    with pytest.raises(ValidationError, match="is not a file"):
        ShellProvisioner.from_config({"type": "shell", "script": str(tmp_path / "nope.sh")})


def test_unknown_type_and_keys_are_collected():
    with pytest.raises(ValidationError) as exc_info:
        create_provisioners(
            [{"type": "ansible"}, {"type": "shell", "inline": ["true"], "sudo": True}]
        )

    messages = [str(e) for e in exc_info.value.errors]
    assert any("unknown provisioner type 'ansible'" in m for m in messages)
    assert "unknown shell provisioner key 'sudo'" in messages


def test_scripts_must_be_a_list():
    with pytest.raises(ValidationError) as exc_info:
        create_provisioners([{"type": "shell", "scripts": 5}])

    messages = [str(e) for e in exc_info.value.errors]
    assert "shell provisioner 'scripts' must be a list of strings" in messages
    assert "shell provisioner needs 'inline' commands or a 'script'" in messages


# Provisioning


def test_inline_commands_run_with_environment():
    communicator = FakeCommunicator()
    provisioner = ShellProvisioner(
        inline=["make install"], environment_vars={"PREFIX": "/opt/app dir"}
    )

    provisioner.provision(communicator)

    assert communicator.commands == ["export PREFIX='/opt/app dir'; make install"]


def test_windows_environment_uses_powershell_syntax():
    communicator = FakeCommunicator(windows=True)
    provisioner = ShellProvisioner(inline=["choco install git"], environment_vars={"A": "it's"})

    provisioner.provision(communicator)

    assert communicator.commands == ["$env:A='it''s'; choco install git"]


def test_scripts_are_uploaded_then_executed(tmp_path):
    script = tmp_path / "setup.sh"
    script.write_text("echo hi\n")
    communicator = FakeCommunicator()

    ShellProvisioner(scripts=[str(script)], remote_folder="/var/tmp").provision(communicator)

    assert communicator.uploads == [(str(script), "/var/tmp/script_0_setup.sh")]
    assert communicator.commands == [
        "chmod +x /var/tmp/script_0_setup.sh",
        "/var/tmp/script_0_setup.sh",
    ]


# Communicator


def test_exec_command_for_linux_and_windows():
    linux = DockerCommunicator("docker", "c0ffee", host_dir="/h", container_dir="/c", exec_user="app")
    windows = DockerCommunicator("docker", "c0ffee", host_dir="/h", container_dir="c:/c", windows=True)

    assert linux.exec_command("id") == ["docker", "exec", "-u", "app", "c0ffee", "/bin/sh", "-c", "id"]
    assert windows.exec_command("dir") == ["docker", "exec", "c0ffee", "powershell", "-Command", "dir"]


@patch("subprocess.Popen")
def test_run_raises_on_non_zero_exit(mock_popen):
    mock_popen.return_value = _process(["oops\n"], 2)
    communicator = DockerCommunicator("docker", "c0ffee", host_dir="/h", container_dir="/c")

    with pytest.raises(ProvisionerError, match="non-zero status 2"):
        communicator.run("false")


@patch("subprocess.Popen")
def test_upload_stages_file_and_fixes_owner(mock_popen, tmp_path):
    mock_popen.side_effect = lambda *args, **kwargs: _process([], 0)
    host_dir = tmp_path / "mounted"
    host_dir.mkdir()
    source = tmp_path / "setup.sh"
    source.write_text("echo hi\n")
    communicator = DockerCommunicator(
        "docker", "c0ffee", host_dir=str(host_dir), container_dir="/imagebuilder-files", exec_user="app"
    )

    communicator.upload(str(source), "/tmp/setup.sh")

    (staged,) = os.listdir(host_dir)
    assert staged.endswith("-setup.sh")
    copy_cmd, chown_cmd = [call[0][0] for call in mock_popen.call_args_list]
    assert copy_cmd[:5] == ["docker", "exec", "-u", "root", "c0ffee"]
    assert copy_cmd[-1] == f"cp /imagebuilder-files/{staged} /tmp/setup.sh"
    assert chown_cmd[-1] == "chown -R app /tmp/setup.sh"


def test_closed_communicator_refuses_commands():
    communicator = DockerCommunicator("docker", "c0ffee", host_dir="/h", container_dir="/c")
    communicator.close()

    with pytest.raises(ProvisionerError, match="closed"):
        communicator.run("true")


@patch("subprocess.Popen")
def test_windows_upload_quotes_paths(mock_popen, tmp_path):
    mock_popen.return_value = _process([], 0)
    host_dir = tmp_path / "mounted dir"
    host_dir.mkdir()
    source = tmp_path / "setup.ps1"
    source.write_text("Write-Host hi\n")
    communicator = DockerCommunicator(
        "docker", "c0ffee", host_dir=str(host_dir), container_dir="c:/imagebuilder files", windows=True
    )

    communicator.upload(str(source), "C:/Program Files/setup.ps1")

    (staged,) = os.listdir(host_dir)
    command = mock_popen.call_args[0][0][-1]
    assert command == (
        f"Copy-Item -Force -Path 'c:/imagebuilder files/{staged}' "
        "-Destination 'C:/Program Files/setup.ps1'"
    )


def test_windows_scripts_are_invoked_quoted(tmp_path):
    script = tmp_path / "setup.ps1"
    script.write_text("Write-Host hi\n")
    communicator = FakeCommunicator(windows=True)

    ShellProvisioner(scripts=[str(script)], remote_folder="C:/Temp Dir").provision(communicator)

    assert communicator.uploads == [(str(script), "C:/Temp Dir/script_0_setup.ps1")]
    assert communicator.commands == ["& 'C:/Temp Dir/script_0_setup.ps1'"]


def test_missing_engine_is_a_provisioner_error(tmp_path):
    communicator = DockerCommunicator(
        str(tmp_path / "no-docker"), "c0ffee", host_dir="/h", container_dir="/c"
    )

    with pytest.raises(ProvisionerError, match="Failed to execute"):
        communicator.run("true")

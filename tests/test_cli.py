"""Tests for the imagebuilder CLI."""

import logging
import sys
import textwrap
from pathlib import Path

import pytest

from imagebuilder.artifact import BUILDER_ID_IMPORT, ImportArtifact
from imagebuilder.cli.app import app, main
from imagebuilder.cli.formatters import print_artifact, print_validation_result
from imagebuilder.engine.mock import MockDriver


def _write_sample_buildfile(tmp_path: Path, extra: str = "") -> Path:
    """Create a sample Buildfile for testing."""
    content = textwrap.dedent(
        """
        [default.builder]
        image = "ubuntu:24.04"
        commit = true
        login = true
        login_username = "bob"
        login_password = "hunter2"

        [[default.post_processors]]
        type = "tag"
        repository = "acme/app"
        tags = ["1.0"]

        [broken.builder]
        discard = true
        """
    )
    buildfile = tmp_path / "Buildfile"
    buildfile.write_text(content + textwrap.dedent(extra), encoding="utf-8")
    return buildfile


def _invoke(args):
    """Run the app and return its exit code, whatever cyclopts version is installed."""
    try:
        app(args)
    except SystemExit as exc:
        return exc.code or 0
    return 0


def main_with_args(args):
    """Helper to run main() with specific arguments."""
    original_argv = sys.argv
    try:
        sys.argv = ["imagebuilder"] + args
        main()
    finally:
        sys.argv = original_argv


@pytest.fixture(autouse=True)
def restore_root_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def mock_driver(monkeypatch):
    driver = MockDriver()
    monkeypatch.setattr(
        "imagebuilder.cli.build.create_driver", lambda *args, **kwargs: driver
    )
    return driver


class TestCLIHelp:
    """Test CLI help messages and basic command structure."""

    def test_main_help(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            app(["--help"])
        assert exc_info.value.code == 0

        captured = capsys.readouterr()
        assert "build" in captured.out
        assert "validate" in captured.out
        assert "inspect" in captured.out

    def test_build_help(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            app(["build", "--help"])
        assert exc_info.value.code == 0

        captured = capsys.readouterr()
        assert "--env" in captured.out
        assert "--buildfile" in captured.out


class TestBuildCommand:
    def test_build_runs_pipeline_and_post_processors(self, tmp_path, capsys, mock_driver):
        buildfile = _write_sample_buildfile(tmp_path)

        assert _invoke(["build", "-f", str(buildfile)]) == 0

        captured = capsys.readouterr()
        assert "Imported Docker image: acme/app:1.0 with tags acme/app:1.0" in captured.out
        assert mock_driver.calls_to("login")[0] == ("", "bob", "hunter2")
        assert mock_driver.calls_to("tag_image") == [
            (mock_driver.commit_image_id, "acme/app:1.0", False)
        ]

    def test_cancelled_build_exits_130(self, tmp_path, monkeypatch, mock_driver):
        buildfile = _write_sample_buildfile(tmp_path)
        monkeypatch.setattr(
            "imagebuilder.cli.build.Builder.run", lambda self, *args, **kwargs: None
        )

        assert _invoke(["build", "-f", str(buildfile)]) == 130
        assert not mock_driver.called("tag_image")

    def test_invalid_configuration_exits_1(self, tmp_path, capsys, mock_driver):
        buildfile = _write_sample_buildfile(tmp_path)

        with pytest.raises(SystemExit) as exc_info:
            main_with_args(["build", "-f", str(buildfile), "--env", "broken"])

        assert exc_info.value.code == 1
        assert mock_driver.calls == []

    def test_missing_buildfile_exits_1(self, tmp_path):
        empty = tmp_path / "empty"
        empty.mkdir()

        with pytest.raises(SystemExit) as exc_info:
            main_with_args(["build", "-f", str(empty)])

        assert exc_info.value.code == 1


class TestValidateCommand:
    def test_valid_environment(self, tmp_path, capsys, mock_driver):
        buildfile = _write_sample_buildfile(tmp_path)

        assert _invoke(["validate", "-f", str(buildfile)]) == 0

        captured = capsys.readouterr()
        assert "Configuration is valid." in captured.out
        assert mock_driver.calls == []

    def test_errors_from_every_section_are_listed(self, tmp_path, capsys, mock_driver):
        buildfile = _write_sample_buildfile(
            tmp_path,
            """
            [[broken.provisioners]]
            type = "puppet"

            [[broken.post_processors]]
            type = "save"
            """,
        )

        assert _invoke(["validate", "-f", str(buildfile), "-e", "broken"]) == 1

        captured = capsys.readouterr()
        assert "missing 'image' attribute" not in captured.out
        assert "Cannot specify more than one of commit, discard" in captured.out
        assert "unknown provisioner type 'puppet'" in captured.out
        assert "save.path is required" in captured.out


class TestInspectCommand:
    def test_secrets_are_masked(self, tmp_path, capsys):
        buildfile = _write_sample_buildfile(tmp_path)

        assert _invoke(["inspect", "-f", str(buildfile)]) == 0

        captured = capsys.readouterr()
        assert "hunter2" not in captured.out
        assert "********" in captured.out
        assert '"terminal_action": "commit"' in captured.out
        assert "Available environments: default, broken" in captured.out


class TestFormatters:
    def test_print_cancelled_artifact(self, capsys):
        print_artifact(None)
        assert "Build cancelled" in capsys.readouterr().out

    def test_print_artifact_with_generated_data(self, capsys):
        artifact = ImportArtifact(
            image_id="sha256:abc",
            builder_id=BUILDER_ID_IMPORT,
            state_data={"generated_data": {"ImageSha256": "sha256:abc", "SourceImageDigest": ""}},
        )

        print_artifact(artifact)

        captured = capsys.readouterr()
        assert "Imported Docker image: sha256:abc" in captured.out
        assert "ImageSha256" in captured.out
        assert "(empty)" in captured.out

    def test_print_validation_result_lists_errors(self, capsys):
        print_validation_result(["pull is ignored"], ["first problem", "second problem"])

        captured = capsys.readouterr()
        assert "pull is ignored" in captured.out
        assert "2 configuration error(s)" in captured.out
        assert "second problem" in captured.out

"""Buildfile discovery, environment merging and path resolution."""

import textwrap
from pathlib import Path

import pytest

from imagebuilder.config import (
    BUILDFILE_ENV_VAR,
    ENVIRONMENT_ENV_VAR,
    discover_buildfile,
    list_environments,
    load_environment,
)
from imagebuilder.errors import (
    BuildfileEnvironmentNotFoundError,
    BuildfileInvalidError,
    BuildfileNotFoundError,
)

SAMPLE = textwrap.dedent(
    """
    [default.builder]
    image = "ubuntu:24.04"
    commit = true
    changes = ["ENV A=1"]

    [[default.provisioners]]
    type = "shell"
    script = "scripts/setup.sh"

    [[default.post_processors]]
    type = "tag"
    repository = "acme/app"

    [release.builder]
    commit = false
    export_path = "out/image.tar"

    [release.builder.build]
    path = "docker/Dockerfile"
    """
)


def _write(tmp_path: Path, content: str = SAMPLE, name: str = "Buildfile") -> Path:
    path = tmp_path / name
    path.write_text(content, encoding="utf-8")
    return path


def test_default_environment(tmp_path):
    buildfile = _write(tmp_path)

    environment = load_environment(buildfile)

    assert environment.name == "default"
    assert environment.path == buildfile
    assert environment.builder == {
        "image": "ubuntu:24.04",
        "commit": True,
        "changes": ["ENV A=1"],
    }
    assert environment.provisioners == [
        {"type": "shell", "script": str(tmp_path / "scripts/setup.sh")}
    ]
    assert environment.post_processors == [{"type": "tag", "repository": "acme/app"}]


def test_named_environment_is_merged_over_default(tmp_path):
    buildfile = _write(tmp_path)

    environment = load_environment(buildfile, env="release")

    assert environment.builder["image"] == "ubuntu:24.04"
    assert environment.builder["commit"] is False
    assert environment.builder["export_path"] == str(tmp_path / "out/image.tar")
    assert environment.builder["build"] == {
        "path": str(tmp_path / "docker/Dockerfile"),
        "build_dir": str(tmp_path),
    }


def test_environment_from_env_var(tmp_path, monkeypatch):
    buildfile = _write(tmp_path)
    monkeypatch.setenv(ENVIRONMENT_ENV_VAR, "release")

    assert load_environment(buildfile).name == "release"


def test_buildfile_from_env_var(tmp_path, monkeypatch):
    buildfile = _write(tmp_path, name="images.toml")
    monkeypatch.setenv(BUILDFILE_ENV_VAR, str(buildfile))

    assert load_environment().path == buildfile


def test_discovery_walks_up_parents(tmp_path):
    buildfile = _write(tmp_path, name="Buildfile.toml")
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)

    assert discover_buildfile(nested) == buildfile.resolve()


def test_directory_argument_finds_buildfile_inside(tmp_path):
    buildfile = _write(tmp_path)

    assert load_environment(tmp_path).path == buildfile


def test_tool_table_is_supported(tmp_path):
    content = textwrap.dedent(
        """
        [tool.imagebuilder.default.builder]
        image = "alpine"
        discard = true
        """
    )
    buildfile = _write(tmp_path, content, name="pyproject.toml")

    assert load_environment(buildfile).builder == {"image": "alpine", "discard": True}


def test_missing_buildfile(tmp_path):
    with pytest.raises(BuildfileNotFoundError):
        load_environment(tmp_path / "nope")

    with pytest.raises(BuildfileNotFoundError, match="not found inside directory"):
        load_environment(tmp_path)


def test_invalid_toml(tmp_path):
    buildfile = _write(tmp_path, "[default.builder\nimage = ")

    with pytest.raises(BuildfileInvalidError, match="Invalid TOML"):
        load_environment(buildfile)


def test_unknown_environment(tmp_path):
    buildfile = _write(tmp_path)

    with pytest.raises(BuildfileEnvironmentNotFoundError, match="'staging'"):
        load_environment(buildfile, env="staging")


def test_unknown_section(tmp_path):
    buildfile = _write(tmp_path, '[default.builder]\nimage = "a"\n[default.hooks]\nx = 1\n')

    with pytest.raises(BuildfileInvalidError, match="Unknown section"):
        load_environment(buildfile)


def test_missing_builder_table(tmp_path):
    buildfile = _write(tmp_path, '[[default.provisioners]]\ntype = "shell"\n')

    with pytest.raises(BuildfileInvalidError, match=r"must define a \[builder\] table"):
        load_environment(buildfile)


def test_entries_need_a_type(tmp_path):
    buildfile = _write(
        tmp_path, '[default.builder]\nimage = "a"\n[[default.post_processors]]\nrepository = "x"\n'
    )

    with pytest.raises(BuildfileInvalidError, match="needs a 'type'"):
        load_environment(buildfile)


def test_list_environments(tmp_path):
    buildfile = _write(tmp_path)

    assert list_environments(buildfile) == ["default", "release"]


def test_explicit_build_dir_is_kept(tmp_path):
    content = textwrap.dedent(
        """
        [default.builder]
        discard = true

        [default.builder.build]
        path = "Dockerfile"
        build_dir = "context"
        """
    )
    buildfile = _write(tmp_path, content)

    assert load_environment(buildfile).builder["build"] == {
        "path": str(tmp_path / "Dockerfile"),
        "build_dir": str(tmp_path / "context"),
    }

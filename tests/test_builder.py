"""End-to-end pipeline runs against the recording driver."""

import pytest

from imagebuilder.artifact import BUILDER_ID, BUILDER_ID_IMPORT, ExportArtifact, ImportArtifact
from imagebuilder.builder import Builder
from imagebuilder.engine.base import SHA256_TEMPLATE
from imagebuilder.errors import EngineError, ValidationError
from imagebuilder.lifecycle.state import IMAGE_SHA256, SOURCE_IMAGE_DIGEST, SOURCE_IMAGE_SHA256
from imagebuilder.provisioners import Provisioner


class CallbackProvisioner(Provisioner):
    type_name = "callback"

    def __init__(self, callback):
        self.callback = callback

    def provision(self, communicator):
        self.callback(communicator)


def _builder(driver, raw):
    builder = Builder(driver=driver)
    builder.prepare(raw)
    return builder


def test_prepare_reports_generated_data_keys(driver):
    keys, warnings = Builder(driver=driver).prepare({"image": "alpine", "commit": True})

    assert keys == [IMAGE_SHA256, SOURCE_IMAGE_DIGEST]
    assert warnings == []


def test_prepare_rejects_invalid_configuration(driver):
    with pytest.raises(ValidationError):
        Builder(driver=driver).prepare({"commit": True})


def test_run_requires_prepare(driver):
    with pytest.raises(RuntimeError, match="prepare"):
        Builder(driver=driver).run()


def test_commit_build_produces_import_artifact(driver):
    driver.inspect_results = {
        ("ubuntu:24.04", SHA256_TEMPLATE): "sha256:base",
        (driver.commit_image_id, SHA256_TEMPLATE): "sha256:final",
    }
    builder = _builder(driver, {"image": "ubuntu:24.04", "commit": True})

    artifact = builder.run()

    assert isinstance(artifact, ImportArtifact)
    assert artifact.id == driver.commit_image_id
    assert artifact.builder_id == BUILDER_ID_IMPORT
    assert artifact.generated_data[IMAGE_SHA256] == "sha256:final"
    assert artifact.generated_data[SOURCE_IMAGE_SHA256] == "sha256:base"
    names = [name for name, _ in driver.calls if name != "inspect_field"]
    assert names == [
        "verify",
        "version",
        "pull",
        "start_container",
        "commit",
        "kill_container",
    ]
    assert not builder.state.temp_dir


def test_commit_without_image_id_is_an_error(driver):
    driver.commit_image_id = ""
    builder = _builder(driver, {"image": "ubuntu:24.04", "commit": True})

    with pytest.raises(EngineError, match="without producing an image ID"):
        builder.run()


def test_require_config_after_prepare(driver):
    builder = _builder(driver, {"image": "alpine", "discard": True})

    assert builder.require_config().image == "alpine"

    with pytest.raises(RuntimeError, match="prepare"):
        Builder(driver=driver).require_config()


def test_export_build_produces_export_artifact(driver, tmp_path):
    target = tmp_path / "rootfs.tar"
    builder = _builder(driver, {"image": "ubuntu:24.04", "export_path": str(target)})

    artifact = builder.run()

    assert isinstance(artifact, ExportArtifact)
    assert artifact.builder_id == BUILDER_ID
    assert artifact.files() == [str(target)]
    assert target.read_bytes() == driver.export_payload
    assert not driver.called("commit")


def test_discard_build_produces_empty_export_artifact(driver):
    builder = _builder(driver, {"image": "ubuntu:24.04", "discard": True})

    artifact = builder.run()

    assert isinstance(artifact, ExportArtifact)
    assert artifact.files() == []
    assert str(artifact) == "Discarded Docker container"
    assert not driver.called("commit")
    assert not driver.called("export")
    assert driver.called("kill_container")


def test_provisioners_receive_the_communicator(driver):
    seen = []
    builder = _builder(driver, {"image": "ubuntu:24.04", "discard": True})

    builder.run([CallbackProvisioner(seen.append)])

    assert len(seen) == 1
    assert seen[0].container_id == driver.container_id
    assert seen[0].closed


def test_step_failure_is_raised_after_cleanup(driver):
    driver.errors["commit"] = EngineError("disk full")
    builder = _builder(driver, {"image": "ubuntu:24.04", "commit": True})

    with pytest.raises(EngineError, match="disk full"):
        builder.run()

    assert driver.called("kill_container")
    assert builder.state.image_id is None


def test_failure_before_container_start_skips_kill(driver):
    driver.errors["pull"] = EngineError("manifest unknown")
    builder = _builder(driver, {"image": "ubuntu:24.04", "commit": True})

    with pytest.raises(EngineError):
        builder.run()

    assert not driver.called("start_container")
    assert not driver.called("kill_container")


def test_unusable_engine_fails_before_any_step(driver):
    driver.errors["verify"] = EngineError("docker not found")
    builder = _builder(driver, {"image": "ubuntu:24.04", "commit": True})

    with pytest.raises(EngineError):
        builder.run()

    assert [name for name, _ in driver.calls] == ["verify"]


def test_cancelled_build_returns_no_artifact(driver):
    builder = _builder(driver, {"image": "ubuntu:24.04", "commit": True})

    artifact = builder.run([CallbackProvisioner(lambda _: builder.cancel())])

    assert artifact is None
    assert builder.state.cancelled
    assert not driver.called("commit")
    assert driver.called("kill_container")

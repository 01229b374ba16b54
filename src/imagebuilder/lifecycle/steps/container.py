"""Steps that manage the working container and the connection to it."""

import logging
import shutil
import tempfile
from typing import Callable, Dict, Optional

from ...communicator import DockerCommunicator
from ...engine.base import ContainerConfig
from ...errors import EngineError
from ..config import COMMUNICATOR_NONE
from ..runner import Step, StepAction
from ..state import BuildState

logger = logging.getLogger(__name__)

HostFunc = Callable[[BuildState], str]
ConnectFunc = Callable[[BuildState], DockerCommunicator]


class TempDirStep(Step):
    """Create the host directory that is mounted into the container."""

    description = "Creating temporary directory"

    def run(self, state: BuildState) -> StepAction:
        state.temp_dir = tempfile.mkdtemp(prefix="imagebuilder-")
        logger.debug("Temporary directory: %s", state.temp_dir)
        return StepAction.CONTINUE

    def cleanup(self, state: BuildState) -> None:
        if state.temp_dir:
            shutil.rmtree(state.temp_dir, ignore_errors=True)
            state.temp_dir = None


class RunContainerStep(Step):
    """Start the working container; cleanup kills and removes it."""

    description = "Starting container"

    def run(self, state: BuildState) -> StepAction:
        config = state.config
        volumes = dict(config.volumes)
        if state.temp_dir:
            volumes[state.temp_dir] = config.container_dir

        run_config = ContainerConfig(
            image=state.image,
            run_command=list(config.run_command),
            volumes=volumes,
            device=list(config.device),
            cap_add=list(config.cap_add),
            cap_drop=list(config.cap_drop),
            tmpfs=list(config.tmpfs),
            privileged=config.privileged,
            runtime=config.runtime or None,
            platform=config.platform or None,
        )

        logger.info("Starting docker container...")
        container_id = state.driver.start_container(run_config)
        state.set_container_id(container_id)
        logger.info("Container ID: %s", container_id)
        return StepAction.CONTINUE

    def cleanup(self, state: BuildState) -> None:
        if state.container_id is None:
            return
        driver = state.driver
        logger.info("Killing the container: %s", state.container_id)
        try:
            driver.kill_container(state.container_id)
        except EngineError as exc:
            logger.error("Error killing container %s: %s", state.container_id, exc)


def container_host(state: BuildState) -> str:
    """Resolve the address of the working container."""

    if state.container_id is None:
        raise EngineError("no container is running")
    return state.driver.ip_address(state.container_id)


def connect_docker(state: BuildState) -> DockerCommunicator:
    config = state.config
    return DockerCommunicator(
        config.docker_path,
        state.container_id or "",
        host_dir=state.temp_dir or "",
        container_dir=config.container_dir,
        exec_user=config.exec_user,
        windows=config.windows_container,
        fix_upload_owner=config.fix_upload_owner,
    )


DEFAULT_CONNECTORS: Dict[str, ConnectFunc] = {
    "docker": connect_docker,
    "dockerWindowsContainer": connect_docker,
}


class ConnectStep(Step):
    """Open a communicator to the container for the provisioners.

    The communicator type picks the connect function; ``none`` skips the
    connection. Cleanup always closes the communicator, which also drops any
    temporary access it held.
    """

    description = "Connecting to container"

    def __init__(
        self,
        host: HostFunc = container_host,
        connectors: Optional[Dict[str, ConnectFunc]] = None,
    ):
        self.host = host
        self.connectors = DEFAULT_CONNECTORS if connectors is None else connectors

    def run(self, state: BuildState) -> StepAction:
        communicator_type = state.config.communicator
        if communicator_type == COMMUNICATOR_NONE:
            logger.info("Not using a communicator; provisioners can't connect")
            return StepAction.CONTINUE

        connect = self.connectors.get(communicator_type)
        if connect is None:
            raise EngineError(f"unsupported communicator type {communicator_type!r}")

        try:
            state.instance_ip = self.host(state)
        except EngineError as exc:
            logger.warning("Could not resolve container address: %s", exc)
        state.communicator = connect(state)
        logger.debug("Connected with the %s communicator", communicator_type)
        return StepAction.CONTINUE

    def cleanup(self, state: BuildState) -> None:
        if state.communicator is not None:
            state.communicator.close()
            state.communicator = None

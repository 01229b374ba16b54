"""
This package provides drivers that turn builder operations into container
engine invocations.
"""

from typing import Any

from .base import ContainerConfig, EngineDriver
from .docker import DockerDriver
from .mock import MockDriver
from .version import SemanticVersion


def create_driver(driver_type: str = "docker", **kwargs: Any) -> EngineDriver:
    """
    Create an engine driver of the specified type.

    Args:
        driver_type: The type of driver to create ("docker" or "mock").
        **kwargs: Additional arguments to pass to the driver constructor.

    Returns:
        An engine driver instance.

    Raises:
        ValueError: If the specified driver type is not supported.
    """
    if driver_type == "docker":
        # Filter out None values so constructor defaults apply
        docker_kwargs = {k: v for k, v in kwargs.items() if v is not None}
        return DockerDriver(**docker_kwargs)
    elif driver_type == "mock":
        return MockDriver(**kwargs)
    else:
        raise ValueError(f"Unsupported driver type: {driver_type}")


__all__ = [
    "ContainerConfig",
    "DockerDriver",
    "EngineDriver",
    "MockDriver",
    "SemanticVersion",
    "create_driver",
]

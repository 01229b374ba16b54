"""Lifecycle steps, in the order the builder runs them."""

from .bootstrap import BootstrapStep
from .container import ConnectStep, RunContainerStep, TempDirStep, container_host
from .finalize import CommitStep, ExportStep, SetDefaultsStep
from .generated_data import SeedGeneratedDataStep
from .provision import ProvisionStep
from .pull import PullStep

__all__ = [
    "BootstrapStep",
    "CommitStep",
    "ConnectStep",
    "ExportStep",
    "ProvisionStep",
    "PullStep",
    "RunContainerStep",
    "SeedGeneratedDataStep",
    "SetDefaultsStep",
    "TempDirStep",
    "container_host",
]

# imagebuilder/__init__.py

"""
This package builds container images by driving an installed container
engine CLI through an ordered lifecycle of steps.
"""

__version__ = "0.1.0"

from .artifact import Artifact, ExportArtifact, ImportArtifact
from .builder import Builder
from .engine import DockerDriver, EngineDriver, MockDriver, create_driver
from .lifecycle import BootstrapConfig, BuildConfig, BuildState, TerminalAction
from .provisioners import ShellProvisioner

__all__ = [
    "Artifact",
    "BootstrapConfig",
    "BuildConfig",
    "BuildState",
    "Builder",
    "DockerDriver",
    "EngineDriver",
    "ExportArtifact",
    "ImportArtifact",
    "MockDriver",
    "ShellProvisioner",
    "TerminalAction",
    "create_driver",
]

"""
Build artifacts.

An artifact is what a build (or a post-processor) hands on: an image in the
local engine (:class:`ImportArtifact`) or a tarball on disk
(:class:`ExportArtifact`). Both carry the generated data of the build.
"""

import abc
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .engine.base import EngineDriver

logger = logging.getLogger(__name__)

BUILDER_ID = "imagebuilder.docker"
BUILDER_ID_IMPORT = "imagebuilder.post-processor.docker-import"
BUILDER_ID_TAG = "imagebuilder.post-processor.docker-tag"
BUILDER_ID_SAVE = "imagebuilder.post-processor.docker-save"

#: Reserved state name that returns a :class:`RegistryImage`.
REGISTRY_IMAGE_STATE = "registry_image"


@dataclass
class RegistryImage:
    """Registry metadata describing an image produced by a build."""

    image_id: str
    builder_id: str
    provider: str = "docker"
    region: str = "docker"
    source_image_id: str = ""
    labels: Dict[str, str] = field(default_factory=dict)


class Artifact(abc.ABC):
    """Result of a build step or post-processor."""

    builder_id: str
    state_data: Dict[str, Any]

    @property
    @abc.abstractmethod
    def id(self) -> str:
        """Primary identifier: an image ID, a repository or a file path."""

    @abc.abstractmethod
    def files(self) -> List[str]:
        """Local files that make up the artifact."""

    @abc.abstractmethod
    def destroy(self) -> None:
        """Remove whatever the artifact points at."""

    def state(self, name: str) -> Any:
        return self.state_data.get(name)

    @property
    def generated_data(self) -> Dict[str, str]:
        return dict(self.state_data.get("generated_data") or {})


@dataclass
class ImportArtifact(Artifact):
    """An image known to the local engine."""

    image_id: str
    builder_id: str
    driver: Optional[EngineDriver] = field(default=None, repr=False)
    state_data: Dict[str, Any] = field(default_factory=dict)

    @property
    def id(self) -> str:
        return self.image_id

    def files(self) -> List[str]:
        return []

    def tags(self) -> List[str]:
        tags = self.state_data.get("docker_tags") or []
        return [tag for tag in tags if isinstance(tag, str)]

    def destroy(self) -> None:
        if self.driver is None:
            raise RuntimeError("artifact has no engine driver to delete the image with")
        self.driver.delete_image(self.id)

    def state(self, name: str) -> Any:
        if name == REGISTRY_IMAGE_STATE:
            return self.registry_image()
        return super().state(name)

    def registry_image(self) -> RegistryImage:
        """Describe the image for registry metadata, keyed by its content hash."""

        labels: Dict[str, str] = {}
        tags = self.tags()
        if tags:
            labels["tags"] = ",".join(tags)

        data = self.state_data.get("generated_data")
        if not data:
            logger.debug("No generated data exists in state for artifact %s", self.id)
            return RegistryImage(image_id=self.id, builder_id=self.builder_id, labels=labels)

        labels["SourceImageDigest"] = data.get("SourceImageDigest", "")
        labels["ImageSha256"] = data.get("ImageSha256", "")
        labels["ArtifactID"] = self.id
        return RegistryImage(
            image_id=data.get("ImageSha256", ""),
            builder_id=self.builder_id,
            source_image_id=data.get("SourceImageSha256", ""),
            labels=labels,
        )

    def __str__(self) -> str:
        tags = self.tags()
        if tags:
            return f"Imported Docker image: {self.id} with tags {' '.join(tags)}"
        return f"Imported Docker image: {self.id}"


@dataclass
class ExportArtifact(Artifact):
    """A tarball written to disk.

    An empty ``path`` stands for a discarded build: there are no files and
    destroying it does nothing.
    """

    path: str
    builder_id: str = BUILDER_ID
    state_data: Dict[str, Any] = field(default_factory=dict)

    @property
    def id(self) -> str:
        return self.path

    def files(self) -> List[str]:
        return [self.path] if self.path else []

    def destroy(self) -> None:
        if self.path and os.path.exists(self.path):
            os.remove(self.path)

    def __str__(self) -> str:
        if not self.path:
            return "Discarded Docker container"
        return f"Exported Docker file: {self.path}"

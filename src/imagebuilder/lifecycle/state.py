"""Mutable state carried between lifecycle steps."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Mapping, MutableMapping, Optional

from ..communicator import DockerCommunicator
from ..engine.base import EngineDriver
from .config import BuildConfig

IMAGE_SHA256 = "ImageSha256"
SOURCE_IMAGE_DIGEST = "SourceImageDigest"
SOURCE_IMAGE_SHA256 = "SourceImageSha256"

ERR_IMAGE_SHA256_NOT_FOUND = "ERR_IMAGE_SHA256_NOT_FOUND"
ERR_SOURCE_IMAGE_DIGEST_NOT_FOUND = "ERR_SOURCE_IMAGE_DIGEST_NOT_FOUND"
ERR_SOURCE_IMAGE_SHA256_NOT_FOUND = "ERR_SOURCE_IMAGE_SHA256_NOT_FOUND"

GENERATED_DATA_DEFAULTS = {
    IMAGE_SHA256: ERR_IMAGE_SHA256_NOT_FOUND,
    SOURCE_IMAGE_DIGEST: ERR_SOURCE_IMAGE_DIGEST_NOT_FOUND,
    SOURCE_IMAGE_SHA256: ERR_SOURCE_IMAGE_SHA256_NOT_FOUND,
}


class GeneratedData(MutableMapping[str, str]):
    """Ordered mapping whose keys are fixed when it is created.

    Values may be replaced but keys can be neither added nor removed.
    """

    def __init__(self, defaults: Optional[Mapping[str, str]] = None):
        self._data: Dict[str, str] = dict(
            GENERATED_DATA_DEFAULTS if defaults is None else defaults
        )

    def __getitem__(self, key: str) -> str:
        return self._data[key]

    def __setitem__(self, key: str, value: str) -> None:
        if key not in self._data:
            raise KeyError(f"unknown generated data key {key!r}")
        self._data[key] = value

    def __delitem__(self, key: str) -> None:
        raise TypeError("generated data keys cannot be removed")

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"GeneratedData({self._data!r})"

    def reset(self) -> None:
        for key in self._data:
            self._data[key] = GENERATED_DATA_DEFAULTS.get(key, "")

    def to_dict(self) -> Dict[str, str]:
        return dict(self._data)


@dataclass
class BuildState:
    """Everything steps share while a build runs.

    Attributes:
        config: The validated configuration (never mutated).
        driver: The engine driver shared by every step.
        image: The effective base image; the bootstrap step overwrites it.
        bootstrapped: True once the bootstrap step built ``image``.
        changes: Commit changes, starting from the configured ones.
        temp_dir: Host directory mounted into the container.
        container_id: The working container, set once by the run step.
        instance_ip: Address of the working container, when known.
        source_sha256: Content hash of the base image.
        source_digest: Distribution digest of the base image.
        image_id: The committed image, set only when the commit succeeded.
        generated_data: Values exposed to post-processors and templates.
        error: The error that halted the pipeline, if any.
        cancelled: Set when the user aborted the build.
    """

    config: BuildConfig
    driver: EngineDriver
    image: str = ""
    bootstrapped: bool = False
    changes: List[str] = field(default_factory=list)
    temp_dir: Optional[str] = None
    container_id: Optional[str] = None
    instance_ip: Optional[str] = None
    source_sha256: Optional[str] = None
    source_digest: Optional[str] = None
    image_id: Optional[str] = None
    generated_data: GeneratedData = field(default_factory=GeneratedData)
    communicator: Optional[DockerCommunicator] = None
    error: Optional[BaseException] = None
    cancelled: bool = False
    cancel_event: threading.Event = field(default_factory=threading.Event, repr=False)

    @classmethod
    def initial(cls, config: BuildConfig, driver: EngineDriver) -> "BuildState":
        return cls(
            config=config,
            driver=driver,
            image=config.image,
            changes=list(config.changes),
        )

    def set_container_id(self, container_id: str) -> None:
        if self.container_id is not None:
            raise RuntimeError("container_id is already set")
        self.container_id = container_id

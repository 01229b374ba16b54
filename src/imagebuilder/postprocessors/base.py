"""
Base module for post-processors.

Post-processors run after a successful build, each receiving the artifact
produced by the previous one.
"""

import abc
from typing import Any, ClassVar, Dict, List, Mapping, Sequence

from ..artifact import Artifact
from ..engine.base import EngineDriver
from ..errors import PostProcessorError, ValidationError
from ..lifecycle.config import decode_table


class PostProcessor(abc.ABC):
    """
    Abstract base class for post-processors.

    Subclasses declare the keys they accept in ``keys`` (key name to kind, as
    understood by the configuration decoder) and the builder ids of the
    artifacts they can handle in ``accepts``.
    """

    type_name: ClassVar[str] = ""
    keys: ClassVar[Dict[str, str]] = {}
    accepts: ClassVar[Sequence[str]] = ()

    def __init__(self, driver: EngineDriver, raw: Mapping[str, Any]):
        self.driver = driver
        errors: List[Any] = []
        options = {k: v for k, v in raw.items() if k != "type"}
        self.options = decode_table(options, self.keys, f"{self.type_name}.", errors)
        errors.extend(self.validate())
        if errors:
            raise ValidationError(errors)

    def validate(self) -> List[str]:
        """Return configuration problems beyond key and type checks."""
        return []

    def check_artifact(self, artifact: Artifact) -> None:
        if self.accepts and artifact.builder_id not in self.accepts:
            raise PostProcessorError(
                f"Unknown artifact type: {artifact.builder_id}\n"
                f"Can only {self.type_name} from Docker builder artifacts."
            )

    @abc.abstractmethod
    def post_process(self, artifact: Artifact) -> Artifact:
        """Process ``artifact`` and return the resulting artifact."""

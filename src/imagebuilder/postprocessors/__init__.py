"""
Post-processors that operate on build artifacts.
"""

from typing import Any, Dict, List, Mapping, Optional, Sequence, Type

from ..credentials import CredentialResolver
from ..engine.base import EngineDriver
from ..errors import ValidationError
from .base import PostProcessor
from .importer import ImportPostProcessor
from .push import PushPostProcessor
from .save import SavePostProcessor
from .tag import TagPostProcessor

POST_PROCESSOR_TYPES: Dict[str, Type[PostProcessor]] = {
    "import": ImportPostProcessor,
    "push": PushPostProcessor,
    "save": SavePostProcessor,
    "tag": TagPostProcessor,
}


def create_post_processor(
    raw: Mapping[str, Any],
    driver: EngineDriver,
    *,
    credentials: Optional[CredentialResolver] = None,
) -> PostProcessor:
    """
    Create a post-processor from its Buildfile table.

    Raises:
        ValidationError: If the type is unknown or the options are invalid.
    """
    post_processor_type = raw.get("type")
    factory = POST_PROCESSOR_TYPES.get(post_processor_type)
    if factory is None:
        raise ValidationError(
            [
                f"unknown post-processor type {post_processor_type!r}; expected one of "
                + ", ".join(sorted(POST_PROCESSOR_TYPES))
            ]
        )
    if factory is PushPostProcessor:
        return PushPostProcessor(driver, raw, credentials=credentials)
    return factory(driver, raw)


def create_post_processors(
    entries: Sequence[Mapping[str, Any]],
    driver: EngineDriver,
    *,
    credentials: Optional[CredentialResolver] = None,
) -> List[PostProcessor]:
    post_processors: List[PostProcessor] = []
    errors: List[Any] = []
    for entry in entries:
        try:
            post_processors.append(
                create_post_processor(entry, driver, credentials=credentials)
            )
        except ValidationError as exc:
            errors.extend(exc.errors)
    if errors:
        raise ValidationError(errors)
    return post_processors


__all__ = [
    "ImportPostProcessor",
    "POST_PROCESSOR_TYPES",
    "PostProcessor",
    "PushPostProcessor",
    "SavePostProcessor",
    "TagPostProcessor",
    "create_post_processor",
    "create_post_processors",
]

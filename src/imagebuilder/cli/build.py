"""Build, validate and inspect commands for the imagebuilder CLI."""

from __future__ import annotations

import logging
from typing import Annotated, Any, Dict, List, NamedTuple, Optional

import cyclopts
from rich.console import Console

from ..artifact import Artifact
from ..builder import Builder
from ..config import BuildfileEnvironment, list_environments, load_environment
from ..engine import create_driver
from ..errors import ValidationError
from ..logging import configure_logging
from ..postprocessors import PostProcessor, create_post_processors
from ..provisioners import Provisioner, create_provisioners
from .formatters import print_artifact, print_resolved_config, print_validation_result

logger = logging.getLogger(__name__)

console = Console(stderr=True)

_SECRET_KEYS = ("login_password", "aws_secret_key", "aws_token")

EnvOption = Annotated[
    Optional[str],
    cyclopts.Parameter(
        name=["--env", "-e"],
        help="Environment name from the Buildfile.",
    ),
]
BuildfileOption = Annotated[
    Optional[str],
    cyclopts.Parameter(
        name=["--buildfile", "-f"],
        help="Path to the Buildfile.",
    ),
]


class PreparedBuild(NamedTuple):
    builder: Builder
    provisioners: List[Provisioner]
    post_processors: List[PostProcessor]
    warnings: List[str]


def _prepare(environment: BuildfileEnvironment) -> PreparedBuild:
    """Validate every section of an environment, collecting all errors.

    The builder and the post-processors share one engine driver, so registry
    sessions opened by either are serialised.
    """

    driver = create_driver(
        "docker", executable=environment.builder.get("docker_path") or None, console=console
    )
    builder = Builder(driver=driver)
    errors: List[Any] = []
    warnings: List[str] = []
    provisioners: List[Provisioner] = []
    post_processors: List[PostProcessor] = []

    try:
        _, warnings = builder.prepare(environment.builder)
    except ValidationError as exc:
        errors.extend(exc.errors)
        warnings = exc.warnings

    try:
        provisioners = create_provisioners(environment.provisioners)
    except ValidationError as exc:
        errors.extend(exc.errors)

    try:
        post_processors = create_post_processors(environment.post_processors, driver)
    except ValidationError as exc:
        errors.extend(exc.errors)

    if errors:
        raise ValidationError(errors, warnings=warnings)
    return PreparedBuild(builder, provisioners, post_processors, warnings)



def build(
    env: EnvOption = None,
    buildfile: BuildfileOption = None,
    debug: Annotated[
        bool,
        cyclopts.Parameter(
            name=["--debug"],
            negative=[],
            help="Show engine commands and other debug output.",
        ),
    ] = False,
) -> None:
    """Build an image from a Buildfile environment and run its post-processors."""

    configure_logging(logging.DEBUG if debug else logging.INFO, console=console)

    environment = load_environment(buildfile, env=env)
    prepared = _prepare(environment)

    logger.info("Building environment '%s' from %s", environment.name, environment.path)
    artifact: Optional[Artifact] = prepared.builder.run(
        prepared.provisioners, console=console
    )

    if artifact is not None:
        for post_processor in prepared.post_processors:
            logger.info("Running %s post-processor", post_processor.type_name)
            artifact = post_processor.post_process(artifact)

    print_artifact(artifact)
    if artifact is None:
        raise SystemExit(130)


def validate(
    env: EnvOption = None,
    buildfile: BuildfileOption = None,
) -> None:
    """Validate a Buildfile environment without running anything."""

    configure_logging(logging.WARNING, console=console)

    environment = load_environment(buildfile, env=env)
    try:
        prepared = _prepare(environment)
    except ValidationError as exc:
        print_validation_result(exc.warnings, exc.errors)
        raise SystemExit(1)
    print_validation_result(prepared.warnings, [])


def inspect(
    env: EnvOption = None,
    buildfile: BuildfileOption = None,
) -> None:
    """Print the resolved configuration of a Buildfile environment."""

    environment = load_environment(buildfile, env=env)
    builder_config = _masked(environment.builder)
    # Only the resolved builder settings are shown once they validate.
    try:
        builder_config = _prepare(environment).builder.require_config().describe()
    except ValidationError as exc:
        console.print(
            f"[yellow]Configuration has {len(exc.errors)} error(s); "
            "showing raw settings. Run 'imagebuilder validate' for details.[/yellow]"
        )

    print_resolved_config(
        environment.name,
        str(environment.path),
        builder_config,
        environment.provisioners,
        [_masked(entry) for entry in environment.post_processors],
        available=list_environments(environment.path),
    )


def _masked(table: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: "********" if key in _SECRET_KEYS and value else value
        for key, value in table.items()
    }

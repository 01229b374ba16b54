"""Root application for the imagebuilder CLI."""

from __future__ import annotations

import sys

import cyclopts
from rich.console import Console

from .build import build, inspect, validate

console = Console(stderr=True)


def _get_version() -> str:
    """Get package version for --version flag."""
    try:
        from importlib.metadata import version

        return version("imagebuilder")
    except Exception:
        return "unknown"


app = cyclopts.App(
    name="imagebuilder",
    help="Build container images by driving the docker CLI through a step pipeline.",
    version=_get_version(),
)

app.command(build, name="build")
app.command(validate, name="validate")
app.command(inspect, name="inspect")


def _handle_error(e: Exception) -> None:
    """Handle exceptions with user-friendly messages."""
    from ..errors import (
        BuildfileEnvironmentNotFoundError,
        BuildfileError,
        BuildfileInvalidError,
        BuildfileNotFoundError,
        CredentialError,
        EngineCommandError,
        EngineError,
        EngineNotFoundError,
        ValidationError,
    )

    if isinstance(e, BuildfileNotFoundError):
        console.print(f"[red]Error:[/red] {e}")
        console.print(
            "\n[dim]Hint: Create a Buildfile in your project directory, "
            "or use --buildfile to specify a path.[/dim]"
        )
    elif isinstance(e, BuildfileEnvironmentNotFoundError):
        console.print(f"[red]Error:[/red] {e}")
        console.print(
            "\n[dim]Hint: Check the environment tables defined in your Buildfile.[/dim]"
        )
    elif isinstance(e, BuildfileInvalidError):
        console.print(f"[red]Error:[/red] {e}")
        console.print("\n[dim]Hint: Check your Buildfile for TOML syntax errors.[/dim]")
    elif isinstance(e, BuildfileError):
        console.print(f"[red]Buildfile Error:[/red] {e}")
    elif isinstance(e, ValidationError):
        console.print(e)
    elif isinstance(e, EngineNotFoundError):
        console.print(f"[red]Engine Not Found:[/red] {e}")
    elif isinstance(e, EngineCommandError):
        console.print("[red]Engine Command Failed:[/red]")
        console.print(e)
    elif isinstance(e, EngineError):
        console.print(f"[red]Engine Error:[/red] {e}")
    elif isinstance(e, CredentialError):
        console.print(f"[red]Credential Error:[/red] {e}")
        console.print(
            "\n[dim]Hint: Check that the AWS CLI is installed and can reach "
            "your account.[/dim]"
        )
    else:
        console.print(f"[red]Error:[/red] {e}")

    sys.exit(1)


def main() -> None:
    """Entry point for the imagebuilder CLI."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted.[/yellow]")
        sys.exit(130)
    except SystemExit:
        raise
    except Exception as e:
        _handle_error(e)

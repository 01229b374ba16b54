"""Rich output formatters for the imagebuilder CLI."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Sequence

from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from ..artifact import Artifact, ImportArtifact

console = Console()


def print_artifact(artifact: Optional[Artifact]) -> None:
    """Display the final artifact and its generated data.

    Args:
        artifact: The artifact produced by the build and post-processors, or
            None when the build was cancelled.
    """
    if artifact is None:
        console.print("[yellow]Build cancelled; no artifact was produced.[/yellow]")
        return

    details: List[str] = [f"[bold]{artifact}[/bold]"]
    details.append(f"[bold]Builder:[/bold] {artifact.builder_id}")

    if files := artifact.files():
        details.append(f"[bold]Files:[/bold] {', '.join(files)}")

    if isinstance(artifact, ImportArtifact) and (tags := artifact.tags()):
        details.append(f"[bold]Tags:[/bold] {', '.join(tags)}")

    if digest := artifact.state("digest"):
        details.append(f"[bold]Digest:[/bold] {digest}")

    console.print(Panel("\n".join(details), title="Artifact", border_style="green"))
    print_generated_data(artifact.generated_data)


def print_generated_data(data: Dict[str, str]) -> None:
    if not data:
        return

    table = Table(title="Generated data")
    table.add_column("Key", style="cyan", no_wrap=True)
    table.add_column("Value", style="white")

    for key, value in data.items():
        styled = f"[dim]{value}[/dim]" if value.startswith("ERR_") else value
        table.add_row(key, styled or "[dim](empty)[/dim]")

    console.print(table)


def print_validation_result(warnings: List[str], errors: List[Any]) -> None:
    """Display validation warnings and errors.

    Args:
        warnings: Non-blocking notices.
        errors: Validation failures; empty when the configuration is valid.
    """
    for warning in warnings:
        console.print(f"[yellow]Warning:[/yellow] {warning}")

    if not errors:
        console.print("[green]Configuration is valid.[/green]")
        return

    console.print(f"[red]{len(errors)} configuration error(s):[/red]")
    for error in errors:
        console.print(f"  [red]*[/red] {error}")


def print_resolved_config(
    env_name: str,
    buildfile: str,
    builder: Dict[str, Any],
    provisioners: List[Dict[str, Any]],
    post_processors: List[Dict[str, Any]],
    available: Sequence[str] = (),
) -> None:
    """Show the resolved configuration of an environment as JSON."""

    document = {
        "builder": builder,
        "provisioners": provisioners,
        "post_processors": post_processors,
    }
    console.print(f"[bold]Environment:[/bold] {env_name}  [dim]({buildfile})[/dim]")
    if available:
        console.print(f"[dim]Available environments: {', '.join(available)}[/dim]")
    console.print(Syntax(json.dumps(document, indent=2, default=str), "json"))

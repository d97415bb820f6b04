"""``buildrelay version BASE``: print the full version identifier."""

from __future__ import annotations

from datetime import datetime, timezone

import typer
from rich.console import Console
from rich.markup import escape

from buildrelay.core.errors import ValidationError
from buildrelay.models.versioning import BuildRequest, VersionIdentifier

console = Console()


def version_cmd(
    base_version: str = typer.Argument(..., help="Semantic base version, e.g. 1.0.0."),
    date: str = typer.Option(
        None,
        "--date",
        "-d",
        help="Build date as YYYY-MM-DD (defaults to today, UTC).",
    ),
) -> None:
    """Print ``{base}-{YYYYMMDD}`` for scripting."""
    try:
        if date:
            timestamp = datetime.strptime(date, "%Y-%m-%d").replace(tzinfo=timezone.utc)
        else:
            timestamp = datetime.now(timezone.utc)
        version = VersionIdentifier.derive(BuildRequest.accept(base_version, timestamp))
    except ValueError as exc:
        console.print(f"[bold red]Invalid date:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=1)
    except ValidationError as exc:
        console.print(f"[bold red]{escape(str(exc))}[/bold red]")
        raise typer.Exit(code=1)

    typer.echo(version.full)

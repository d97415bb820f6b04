"""``buildrelay publish BASE_VERSION``: pipeline 1.

Compiles, tests and packages the checkout, bundles the container recipe
and publishes both artifacts plus the handoff manifest to the artifact
store.  Fires the downstream image pipeline when a CI orchestrator is
configured.
"""

from __future__ import annotations

import json
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from buildrelay.cli._wiring import make_controller
from buildrelay.config import RelayConfig
from buildrelay.core.errors import PromotionError
from buildrelay.monitor.renderer import RunRenderer

console = Console()


def publish_cmd(
    base_version: str = typer.Argument(..., help="Semantic base version, e.g. 1.0.0."),
    source_dir: Path = typer.Option(
        Path("."),
        "--source-dir",
        "-s",
        help="Root of the application checkout (contains pom.xml).",
    ),
    recipe_dir: Path = typer.Option(
        Path("docker"),
        "--recipe-dir",
        "-r",
        help="Directory holding the container recipe files.",
    ),
    handoff_out: Path = typer.Option(
        None,
        "--handoff-out",
        "-o",
        help="Also write the handoff payload as JSON to this file.",
    ),
    trigger: bool = typer.Option(
        True,
        "--trigger/--no-trigger",
        help="Trigger the downstream image pipeline after publishing.",
    ),
) -> None:
    """Run pipeline 1 and print the handoff payload for pipeline 2."""
    settings = RelayConfig()
    controller = make_controller(settings)
    renderer = RunRenderer(console=console)

    try:
        run = controller.create_run(base_version)
    except PromotionError as exc:
        console.print(f"[bold red]Rejected:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=1)

    console.print(
        f"[bold cyan]Publishing {run.version.full}[/bold cyan] [dim](run {run.run_id})[/dim]"
    )

    try:
        result = controller.run_pipeline_one(
            run, source_dir, recipe_dir, trigger=trigger
        )
    except PromotionError as exc:
        if exc.run is not None:
            renderer.print_run(exc.run)
        console.print(f"[bold red]{type(exc).__name__}:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=1)

    renderer.print_run(result.run)

    handoff_json = json.dumps(result.handoff.model_dump(), indent=2, sort_keys=True)
    if handoff_out is not None:
        handoff_out.parent.mkdir(parents=True, exist_ok=True)
        handoff_out.write_text(handoff_json + "\n", encoding="utf-8")

    lines = [f"[bold green]Published {result.handoff.full}[/bold green]", "", handoff_json]
    if result.trigger_ref:
        lines += ["", f"[bold]Downstream:[/bold] {result.trigger_ref}"]
    if result.trigger_error:
        lines += [
            "",
            f"[yellow]Downstream trigger failed:[/yellow] {escape(result.trigger_error)}",
        ]
    console.print(
        Panel(
            "\n".join(lines),
            title="[bold]Handoff[/bold]",
            border_style="green",
            padding=(1, 2),
        )
    )

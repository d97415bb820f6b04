"""``buildrelay containerize``: pipeline 2.

Admits a run from the handoff payload alone (a JSON file or the four
fields as options), then downloads the context bundle, builds the image,
tags it with the full version and ``latest`` and pushes both tags.
"""

from __future__ import annotations

import json
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape

from buildrelay.cli._wiring import make_controller
from buildrelay.config import RelayConfig
from buildrelay.core.errors import PromotionError
from buildrelay.models.artifacts import ArtifactKind
from buildrelay.monitor.renderer import RunRenderer

console = Console()


def _load_payload(
    handoff: Path | None,
    full: str | None,
    build_label: str | None,
    artifact_id: str | None,
    group_id: str | None,
) -> dict[str, str]:
    if handoff is not None:
        try:
            data = json.loads(handoff.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            console.print(
                f"[bold red]Cannot read handoff file:[/bold red] {escape(str(exc))}"
            )
            raise typer.Exit(code=1)
        if not isinstance(data, dict):
            console.print("[bold red]Handoff file must hold a JSON object.[/bold red]")
            raise typer.Exit(code=1)
        return data

    fields = {
        "full": full,
        "build_label": build_label,
        "artifact_id": artifact_id,
        "group_id": group_id,
    }
    missing = [name for name, value in fields.items() if not value]
    if missing:
        console.print(
            "[bold red]Missing handoff fields:[/bold red] "
            + ", ".join(f"--{name.replace('_', '-')}" for name in missing)
        )
        raise typer.Exit(code=1)
    return fields


def containerize_cmd(
    handoff: Path = typer.Option(
        None,
        "--handoff",
        "-H",
        help="Handoff JSON written by 'buildrelay publish'.",
    ),
    full: str = typer.Option(None, "--full", help="Full version, e.g. 1.0.0-20260129."),
    build_label: str = typer.Option(None, "--build-label", help="Build label (YYYYMMDD)."),
    artifact_id: str = typer.Option(None, "--artifact-id", help="Maven artifact id."),
    group_id: str = typer.Option(None, "--group-id", help="Maven group id."),
    work_dir: Path = typer.Option(
        None,
        "--work-dir",
        "-w",
        help="Scratch directory for the unpacked build context.",
    ),
) -> None:
    """Run pipeline 2 for a published version."""
    payload = _load_payload(handoff, full, build_label, artifact_id, group_id)

    settings = RelayConfig()
    controller = make_controller(settings)
    renderer = RunRenderer(console=console)

    try:
        run = controller.admit_handoff(payload)
    except PromotionError as exc:
        console.print(f"[bold red]Rejected:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=1)

    console.print(
        f"[bold cyan]Containerizing {run.version.full}[/bold cyan] [dim](run {run.run_id})[/dim]"
    )

    try:
        run = controller.run_pipeline_two(run, work_dir)
    except PromotionError as exc:
        if exc.run is not None:
            renderer.print_run(exc.run)
        console.print(f"[bold red]{type(exc).__name__}:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=1)

    renderer.print_run(run)
    for ref in run.artifacts:
        if ref.kind is ArtifactKind.IMAGE:
            console.print(f"[green]pushed[/green] {ref.location}")

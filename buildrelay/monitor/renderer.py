"""Rich terminal renderer for pipeline runs.

Shows every promotion state of a run with the transition that entered it,
color-coded by outcome:

- green     : entered successfully
- bold red  : FAILED
- dim       : not reached (or skipped by a handoff entry)
"""

from __future__ import annotations

from rich.console import Console, Group
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from buildrelay.models.artifacts import ArtifactKind
from buildrelay.models.runs import PipelineRun
from buildrelay.models.stages import PROMOTION_ORDER, PromotionState

_KIND_LABELS: dict[ArtifactKind, str] = {
    ArtifactKind.JAR: "jar",
    ArtifactKind.CONTEXT_BUNDLE: "bundle",
    ArtifactKind.IMAGE: "image",
    ArtifactKind.HANDOFF: "handoff",
}


class RunRenderer:
    """Renders ``PipelineRun`` as Rich terminal output.

    Parameters
    ----------
    console:
        Rich Console instance.  A new one is created if not provided.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def render_run(self, run: PipelineRun) -> Panel:
        table = self._build_state_table(run)

        if run.failed:
            status = "[bold red]FAILED[/bold red]"
        elif run.state is PromotionState.PUSHED:
            status = "[bold green]PUSHED[/bold green]"
        else:
            status = f"[yellow]{run.state.value}[/yellow]"

        summary_parts = [
            f"[bold]Run:[/bold] {run.run_id}",
            f"[bold]Version:[/bold] {run.version.full}",
            f"[bold]Coordinates:[/bold] {run.coordinates.group_id}:{run.coordinates.artifact_id}",
            f"[bold]State:[/bold] {status}",
        ]
        body: list = [table, Text(""), Text.from_markup("  |  ".join(summary_parts))]

        if run.artifacts:
            body.append(Text(""))
            body.append(self._build_artifact_table(run))

        return Panel(
            Group(*body),
            title="[bold]Build Promotion[/bold]",
            subtitle=f"Created: {run.created_at.strftime('%Y-%m-%d %H:%M:%S %Z')}",
            border_style="red" if run.failed else "blue",
            padding=(1, 2),
        )

    def _build_state_table(self, run: PipelineRun) -> Table:
        table = Table(show_header=True, header_style="bold cyan", expand=True)
        table.add_column("#", style="dim", width=4, justify="right")
        table.add_column("State", min_width=16)
        table.add_column("Entered", min_width=10)
        table.add_column("Details", min_width=20)

        entered = {t.to_state: t for t in run.history}
        for i, state in enumerate(PROMOTION_ORDER):
            transition = entered.get(state)
            if transition is not None:
                label = f"[green]{state.value}[/green]"
                when = transition.timestamp.strftime("%H:%M:%S")
                detail = escape(transition.detail) if transition.detail else "[dim]-[/dim]"
            elif state is run.entry_state:
                label = f"[green]{state.value}[/green]"
                when = "[dim]entry[/dim]"
                detail = "[dim]-[/dim]"
            else:
                label = f"[dim]{state.value}[/dim]"
                when = "[dim]-[/dim]"
                detail = "[dim]-[/dim]"
            table.add_row(str(i), label, when, detail)

        failure = entered.get(PromotionState.FAILED)
        if failure is not None:
            table.add_row(
                "!",
                "[bold red]failed[/bold red]",
                failure.timestamp.strftime("%H:%M:%S"),
                f"[red]from {failure.from_state.value}: {escape(failure.detail)}[/red]",
            )
        return table

    def _build_artifact_table(self, run: PipelineRun) -> Table:
        table = Table(show_header=True, header_style="bold cyan", expand=True)
        table.add_column("Kind", width=8)
        table.add_column("Name")
        table.add_column("Location")
        table.add_column("SHA-256", width=14)
        for ref in run.artifacts:
            table.add_row(
                _KIND_LABELS.get(ref.kind, ref.kind.value),
                escape(ref.name),
                escape(ref.location),
                ref.sha256[:12] if ref.sha256 else "[dim]-[/dim]",
            )
        return table

    def print_run(self, run: PipelineRun) -> None:
        self.console.print(self.render_run(run))

    def print_chain_verification(self, run_id: str, valid: bool) -> None:
        """Print a chain verification result."""
        if valid:
            self.console.print(f"[green]Hash chain for run {run_id} is valid.[/green]")
        else:
            self.console.print(f"[bold red]Hash chain for run {run_id} is BROKEN![/bold red]")

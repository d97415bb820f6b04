"""``buildrelay status RUN_ID`` and ``buildrelay runs``: read-only views.

Both commands only read the run ledger; nothing is executed.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from buildrelay.config import RelayConfig
from buildrelay.core.errors import LedgerIntegrityError
from buildrelay.core.run_ledger import RunLedger
from buildrelay.core.state_machine import PromotionStateMachine
from buildrelay.monitor.renderer import RunRenderer

console = Console()


def _open_ledger(ledger_db: Path | None) -> RunLedger:
    db_path = ledger_db or RelayConfig().ledger_path
    if not db_path.exists():
        console.print(f"[bold red]Ledger not found:[/bold red] {db_path}")
        console.print("[dim]Create a run first with: buildrelay publish[/dim]")
        raise typer.Exit(code=1)
    return RunLedger(db_path)


def status_cmd(
    run_id: str = typer.Argument(..., help="The run ID to show."),
    verify_chain: bool = typer.Option(
        False,
        "--verify-chain",
        "-V",
        help="Verify the hash chain integrity before displaying.",
    ),
    ledger_db: Path = typer.Option(
        None,
        "--ledger",
        "-l",
        help="Path to the ledger SQLite database (defaults to BUILDRELAY_LEDGER_PATH).",
    ),
) -> None:
    """Show states, artifacts and failure detail of one run."""
    ledger = _open_ledger(ledger_db)
    renderer = RunRenderer(console=console)

    try:
        run = PromotionStateMachine(ledger).load(run_id)
    except KeyError:
        console.print(f"[bold red]Run not found:[/bold red] {run_id}")
        known = ledger.get_all_run_ids()
        if known:
            console.print("\n[bold]Recent runs:[/bold]")
            for rid in known[:10]:
                console.print(f"  [cyan]{rid}[/cyan]")
        raise typer.Exit(code=1)

    if verify_chain:
        try:
            valid = ledger.verify_chain(run_id)
        except LedgerIntegrityError as exc:
            console.print(f"[bold red]Chain verification failed:[/bold red] {escape(str(exc))}")
            valid = False
        renderer.print_chain_verification(run_id, valid)
        console.print()
        if not valid:
            renderer.print_run(run)
            raise typer.Exit(code=1)

    renderer.print_run(run)


def runs_cmd(
    version: str = typer.Option(
        None,
        "--version",
        "-v",
        help="Only list runs for this full version.",
    ),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum rows to show."),
    ledger_db: Path = typer.Option(
        None,
        "--ledger",
        "-l",
        help="Path to the ledger SQLite database (defaults to BUILDRELAY_LEDGER_PATH).",
    ),
) -> None:
    """List recorded runs, most recent first."""
    ledger = _open_ledger(ledger_db)
    machine = PromotionStateMachine(ledger)
    run_ids = ledger.find_runs(version) if version else ledger.get_all_run_ids()

    if not run_ids:
        console.print("[dim]No runs recorded.[/dim]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Run")
    table.add_column("Version")
    table.add_column("Entry")
    table.add_column("State")
    for rid in run_ids[:limit]:
        run = machine.load(rid)
        state = run.state.value
        if run.failed:
            state = f"[bold red]{state}[/bold red]"
        elif run.is_terminal:
            state = f"[green]{state}[/green]"
        table.add_row(rid, run.version.full, run.entry_state.value, state)
    console.print(table)

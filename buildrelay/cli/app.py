"""Main Typer application: registers every CLI command.

Entry point: ``buildrelay`` (configured via pyproject.toml scripts).
"""

from __future__ import annotations

import logging

import typer
from rich.logging import RichHandler

from buildrelay.cli.commands.containerize import containerize_cmd
from buildrelay.cli.commands.publish import publish_cmd
from buildrelay.cli.commands.status import runs_cmd, status_cmd
from buildrelay.cli.commands.version import version_cmd
from buildrelay.config import RelayConfig

app = typer.Typer(
    name="buildrelay",
    help="buildrelay: deterministic build identity and artifact promotion.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


@app.callback()
def main_callback(
    log_level: str = typer.Option(
        None,
        "--log-level",
        help="Logging level (defaults to BUILDRELAY_LOG_LEVEL or INFO).",
    ),
) -> None:
    """Configure logging for every subcommand."""
    level = (log_level or RelayConfig().log_level).upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )


# Register subcommands
app.command(name="version", help="Print the full version identifier for a base version.")(
    version_cmd
)
app.command(name="publish", help="Pipeline 1: build, test, package, bundle and publish.")(
    publish_cmd
)
app.command(name="containerize", help="Pipeline 2: download, build, tag and push the image.")(
    containerize_cmd
)
app.command(name="status", help="Show the recorded history of a run.")(status_cmd)
app.command(name="runs", help="List recorded runs.")(runs_cmd)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()

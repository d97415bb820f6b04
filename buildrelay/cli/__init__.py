"""buildrelay CLI: Typer-based command-line interface.

Provides the ``buildrelay`` command with subcommands for deriving version
identifiers, running either promotion pipeline, and inspecting recorded
runs.

All output uses Rich for formatted terminal display.
"""

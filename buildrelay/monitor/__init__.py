"""Terminal rendering of pipeline runs recorded in the ledger."""

from buildrelay.monitor.renderer import RunRenderer

__all__ = ["RunRenderer"]

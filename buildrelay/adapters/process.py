"""Subprocess helper shared by the command-line adapters."""

from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Mapping, Sequence
from pathlib import Path

from buildrelay.core.errors import PromotionError

logger = logging.getLogger(__name__)

_TAIL_LINES = 20


def _tail(text: str) -> str:
    lines = text.strip().splitlines()
    return "\n".join(lines[-_TAIL_LINES:])


def run_command(
    args: Sequence[str],
    *,
    timeout: float,
    error_cls: type[PromotionError],
    cwd: Path | None = None,
    input_text: str | None = None,
    env: Mapping[str, str] | None = None,
) -> subprocess.CompletedProcess[str]:
    """Run *args* and return the completed process.

    Raises *error_cls* on timeout, a missing executable or a non-zero exit.
    *env* is merged over the current environment and is never logged.
    """
    logger.info("Running: %s", " ".join(args))
    full_env = {**os.environ, **env} if env else None
    try:
        proc = subprocess.run(
            list(args),
            cwd=str(cwd) if cwd else None,
            input=input_text,
            env=full_env,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as exc:
        raise error_cls(f"{args[0]} timed out after {timeout}s") from exc
    except FileNotFoundError as exc:
        raise error_cls(f"{args[0]} is not installed or not on PATH") from exc

    if proc.returncode != 0:
        output = _tail(proc.stderr or proc.stdout)
        raise error_cls(f"{' '.join(args[:2])} exited with {proc.returncode}: {output}")
    return proc

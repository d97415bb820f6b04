"""Canonical hashing helpers for ledger sealing and artifact checksums."""

from __future__ import annotations

import hashlib
import json
from typing import Any


def canonical_json_bytes(obj: Any) -> bytes:
    """Produce canonical JSON bytes: sorted keys, compact separators."""
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True
    ).encode("utf-8")


def sha256_hex(data: bytes) -> str:
    """Return the SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def compute_entry_hash(entry_dict: dict[str, Any]) -> str:
    """SHA-256 of a ledger entry (excluding the entry_hash field itself).

    This is the seal that makes each entry tamper-evident.
    """
    d = {k: v for k, v in entry_dict.items() if k != "entry_hash"}
    return sha256_hex(canonical_json_bytes(d))

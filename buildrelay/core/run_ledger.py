"""Append-only, hash-chained Run Ledger backed by SQLite.

The ledger is the durable record of every pipeline run: one header row per
run and one row per state transition.

Design:
- Append-only: ``register_run()`` and ``append()`` are the only writes.
- Hash-chained: each entry includes SHA-256 of the previous entry in its run.
- WAL journal mode for concurrent readers.
- entry_hash UNIQUE constraint for tamper detection.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from pathlib import Path

from buildrelay.core.errors import LedgerIntegrityError
from buildrelay.core.hasher import compute_entry_hash
from buildrelay.models.ledger import LedgerEntry, RunRecord


# ---------------------------------------------------------------------------
# DDL
# ---------------------------------------------------------------------------

_CREATE_RUNS = """
CREATE TABLE IF NOT EXISTS runs (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id        TEXT NOT NULL UNIQUE,
    base_version  TEXT NOT NULL,
    build_label   TEXT NOT NULL,
    group_id      TEXT NOT NULL,
    artifact_id   TEXT NOT NULL,
    entry_state   TEXT NOT NULL,
    created_at    TEXT NOT NULL
);
"""

_CREATE_LEDGER = """
CREATE TABLE IF NOT EXISTS run_ledger (
    id                    INTEGER PRIMARY KEY AUTOINCREMENT,
    entry_id              TEXT NOT NULL UNIQUE,
    run_id                TEXT NOT NULL REFERENCES runs(run_id),
    from_state            TEXT NOT NULL,
    to_state              TEXT NOT NULL,
    outcome               TEXT NOT NULL,
    detail                TEXT NOT NULL DEFAULT '',
    timestamp_utc         TEXT NOT NULL,
    artifact_refs_json    TEXT NOT NULL DEFAULT '[]',
    previous_entry_hash   TEXT NOT NULL DEFAULT '',
    entry_hash            TEXT NOT NULL UNIQUE
);
"""

_CREATE_IDX_RUN = """
CREATE INDEX IF NOT EXISTS idx_run_id ON run_ledger(run_id, id);
"""


class RunLedger:
    """Append-only, hash-chained Run Ledger.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file. Created if it does not exist.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    def _init_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(_CREATE_RUNS)
            conn.execute(_CREATE_LEDGER)
            conn.execute(_CREATE_IDX_RUN)
            conn.commit()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def register_run(self, record: RunRecord) -> None:
        """Record the header of a newly accepted run."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO runs
                    (run_id, base_version, build_label, group_id, artifact_id,
                     entry_state, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.run_id,
                    record.base_version,
                    record.build_label,
                    record.group_id,
                    record.artifact_id,
                    record.entry_state.value,
                    record.created_at.isoformat(),
                ),
            )
            conn.commit()

    def append(self, entry: LedgerEntry) -> LedgerEntry:
        """Append an entry to the ledger, computing hash chain links.

        Returns the entry with ``previous_entry_hash`` and ``entry_hash`` set.
        """
        previous_hash = self._get_latest_hash(entry.run_id)

        entry_dict = entry.model_dump(mode="json")
        entry_dict["previous_entry_hash"] = previous_hash
        entry_hash = compute_entry_hash(entry_dict)

        sealed = entry.model_copy(
            update={
                "previous_entry_hash": previous_hash,
                "entry_hash": entry_hash,
            }
        )
        self._insert(sealed)
        return sealed

    def _insert(self, entry: LedgerEntry) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO run_ledger
                    (entry_id, run_id, from_state, to_state, outcome, detail,
                     timestamp_utc, artifact_refs_json, previous_entry_hash,
                     entry_hash)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.entry_id,
                    entry.run_id,
                    entry.from_state.value,
                    entry.to_state.value,
                    entry.outcome.value,
                    entry.detail,
                    entry.timestamp_utc.isoformat(),
                    json.dumps(entry.artifact_references),
                    entry.previous_entry_hash,
                    entry.entry_hash,
                ),
            )
            conn.commit()

    def _get_latest_hash(self, run_id: str) -> str:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT entry_hash FROM run_ledger WHERE run_id = ? ORDER BY id DESC LIMIT 1",
                (run_id,),
            ).fetchone()
        return row[0] if row else ""

    # ------------------------------------------------------------------
    # Query methods (read-only)
    # ------------------------------------------------------------------

    def get_run(self, run_id: str) -> RunRecord | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT run_id, base_version, build_label, group_id, artifact_id, "
                "entry_state, created_at FROM runs WHERE run_id = ?",
                (run_id,),
            ).fetchone()
        if row is None:
            return None
        return RunRecord(
            run_id=row[0],
            base_version=row[1],
            build_label=row[2],
            group_id=row[3],
            artifact_id=row[4],
            entry_state=row[5],
            created_at=datetime.fromisoformat(row[6]),
        )

    def get_run_entries(self, run_id: str) -> list[LedgerEntry]:
        """Return all ledger entries for a run, ordered chronologically."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT entry_id, run_id, from_state, to_state, outcome, detail, "
                "timestamp_utc, artifact_refs_json, previous_entry_hash, entry_hash "
                "FROM run_ledger WHERE run_id = ? ORDER BY id ASC",
                (run_id,),
            ).fetchall()
        return [self._row_to_entry(row) for row in rows]

    def get_latest_entry(self, run_id: str) -> LedgerEntry | None:
        """Return the most recent entry for a run, or None if it has none."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT entry_id, run_id, from_state, to_state, outcome, detail, "
                "timestamp_utc, artifact_refs_json, previous_entry_hash, entry_hash "
                "FROM run_ledger WHERE run_id = ? ORDER BY id DESC LIMIT 1",
                (run_id,),
            ).fetchone()
        return self._row_to_entry(row) if row else None

    def get_all_run_ids(self) -> list[str]:
        """Return all run ids, most recent first."""
        with self._connect() as conn:
            rows = conn.execute("SELECT run_id FROM runs ORDER BY id DESC").fetchall()
        return [row[0] for row in rows]

    def find_runs(self, full_version: str) -> list[str]:
        """Run ids whose version identifier equals *full_version*."""
        base, _, label = full_version.rpartition("-")
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT run_id FROM runs WHERE base_version = ? AND build_label = ? "
                "ORDER BY id ASC",
                (base, label),
            ).fetchall()
        return [row[0] for row in rows]

    # ------------------------------------------------------------------
    # Chain verification
    # ------------------------------------------------------------------

    def verify_chain(self, run_id: str) -> bool:
        """Verify the hash chain integrity for a run.

        Returns True if the chain is valid, raises LedgerIntegrityError otherwise.
        """
        prev_hash = ""
        for entry in self.get_run_entries(run_id):
            if entry.previous_entry_hash != prev_hash:
                raise LedgerIntegrityError(
                    f"Chain broken at entry {entry.entry_id}: "
                    f"expected previous_hash={prev_hash!r}, "
                    f"got {entry.previous_entry_hash!r}"
                )

            expected_hash = compute_entry_hash(entry.model_dump(mode="json"))
            if entry.entry_hash != expected_hash:
                raise LedgerIntegrityError(
                    f"Tampered entry {entry.entry_id}: "
                    f"expected hash={expected_hash!r}, "
                    f"got {entry.entry_hash!r}"
                )

            prev_hash = entry.entry_hash

        return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_entry(row: tuple) -> LedgerEntry:
        (
            entry_id,
            run_id,
            from_state,
            to_state,
            outcome,
            detail,
            timestamp_utc,
            artifact_refs_json,
            previous_entry_hash,
            entry_hash,
        ) = row
        return LedgerEntry(
            entry_id=entry_id,
            run_id=run_id,
            from_state=from_state,
            to_state=to_state,
            outcome=outcome,
            detail=detail,
            timestamp_utc=timestamp_utc,
            artifact_references=json.loads(artifact_refs_json),
            previous_entry_hash=previous_entry_hash,
            entry_hash=entry_hash,
        )

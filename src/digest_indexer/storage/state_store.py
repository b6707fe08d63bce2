"""SQLite-backed property store for persisted configuration and run state."""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from digest_indexer.core.exceptions import StateStoreError

logger = logging.getLogger(__name__)

WATERMARK_KEY = "LAST_RUN_TIMESTAMP"
FINGERPRINTS_KEY = "THREAD_FINGERPRINTS"
INDEX_HOST_KEY = "PINECONE_INDEX_HOST"


class StateStore:
    """Key/value properties plus a run audit log, in SQLite.

    Tables:
    - properties: string key → string value (watermark, fingerprint map, cached index host)
    - ingest_runs: audit log of indexing runs
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> None:
        """Open database connection and ensure schema exists."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._create_tables()

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> StateStore:
        self.connect()
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._conn

    def _create_tables(self) -> None:
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS properties (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS ingest_runs (
                run_id INTEGER PRIMARY KEY AUTOINCREMENT,
                query TEXT NOT NULL DEFAULT '',
                started_at TEXT NOT NULL,
                completed_at TEXT,
                threads_total INTEGER DEFAULT 0,
                threads_processed INTEGER DEFAULT 0,
                threads_skipped INTEGER DEFAULT 0,
                threads_failed INTEGER DEFAULT 0,
                status TEXT NOT NULL DEFAULT 'running'
            );
        """)

    # ---------- properties ----------

    def get_property(self, key: str, default: str | None = None) -> str | None:
        row = self.conn.execute(
            "SELECT value FROM properties WHERE key = ?", (key,)
        ).fetchone()
        return row["value"] if row else default

    def set_property(self, key: str, value: str) -> None:
        self._write_properties({key: value})

    def _write_properties(self, values: dict[str, str]) -> None:
        """Write several properties in one transaction; all or none are stored."""
        now = datetime.now(UTC).isoformat()
        rows = [(key, value, now) for key, value in values.items()]
        try:
            with self.conn:
                self.conn.executemany(
                    """INSERT INTO properties (key, value, updated_at)
                       VALUES (?, ?, ?)
                       ON CONFLICT(key) DO UPDATE SET
                           value = excluded.value,
                           updated_at = excluded.updated_at""",
                    rows,
                )
        except sqlite3.Error as e:
            raise StateStoreError(f"Failed to write properties {sorted(values)}: {e}") from e

    # ---------- run state ----------

    def load_watermark(self) -> int:
        """Epoch seconds of the last completed run, or 0 if never run (or unreadable)."""
        raw = self.get_property(WATERMARK_KEY)
        if not raw:
            return 0
        try:
            return int(raw)
        except ValueError:
            logger.warning("Ignoring malformed watermark %r", raw)
            return 0

    def load_fingerprints(self) -> dict[str, str]:
        """Thread ID → fingerprint map. Missing or corrupt data yields an empty map."""
        raw = self.get_property(FINGERPRINTS_KEY)
        if not raw:
            return {}
        try:
            data: Any = json.loads(raw)
        except ValueError as e:
            logger.warning("Fingerprint map is corrupt, starting empty: %s", e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Fingerprint map is not an object, starting empty")
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def save_run_state(self, fingerprints: dict[str, str], watermark: int) -> None:
        """Persist the fingerprint map and the new watermark together.

        Raises:
            StateStoreError: If the write fails; neither value is changed.
        """
        self._write_properties(
            {
                FINGERPRINTS_KEY: json.dumps(fingerprints, sort_keys=True),
                WATERMARK_KEY: str(int(watermark)),
            }
        )

    def reset_run_state(self) -> None:
        """Forget the watermark and all fingerprints; the next run re-indexes everything."""
        with self.conn:
            self.conn.execute(
                "DELETE FROM properties WHERE key IN (?, ?)", (WATERMARK_KEY, FINGERPRINTS_KEY)
            )

    # ---------- run audit ----------

    def start_run(self, query: str) -> int:
        """Record the start of an indexing run. Returns the run_id."""
        now = datetime.now(UTC).isoformat()
        cursor = self.conn.execute(
            "INSERT INTO ingest_runs (query, started_at) VALUES (?, ?)",
            (query, now),
        )
        self.conn.commit()
        return cursor.lastrowid or 0

    def complete_run(
        self,
        run_id: int,
        *,
        threads_total: int = 0,
        threads_processed: int = 0,
        threads_skipped: int = 0,
        threads_failed: int = 0,
        status: str = "completed",
    ) -> None:
        """Record the outcome of an indexing run."""
        now = datetime.now(UTC).isoformat()
        self.conn.execute(
            """UPDATE ingest_runs SET
               completed_at = ?, threads_total = ?, threads_processed = ?,
               threads_skipped = ?, threads_failed = ?, status = ?
               WHERE run_id = ?""",
            (
                now, threads_total, threads_processed, threads_skipped,
                threads_failed, status, run_id,
            ),
        )
        self.conn.commit()

    def recent_runs(self, limit: int = 10) -> list[dict[str, Any]]:
        rows = self.conn.execute(
            "SELECT * FROM ingest_runs ORDER BY run_id DESC LIMIT ?", (limit,)
        ).fetchall()
        return [dict(row) for row in rows]

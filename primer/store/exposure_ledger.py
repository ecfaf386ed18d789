"""
Exposure ledger: append-only record of what each user has been shown.

Rows are never updated or deleted. Reads are always over a trailing window.
"""

import logging
import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, List, Optional

from primer.core.models import ArtifactType, Exposure
from primer.store.database import SQLiteStore, from_timestamp, to_timestamp

logger = logging.getLogger(__name__)


class ExposureLedger(SQLiteStore):
    """SQLite-backed exposure ledger."""

    def __init__(self, db_path: Path = None):
        super().__init__(db_path)

    def _init_db(self):
        conn = self._get_connection()

        conn.execute("""
            CREATE TABLE IF NOT EXISTS exposures (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                artifact_type TEXT NOT NULL,
                canonical_identifier TEXT NOT NULL,
                creator_identifier TEXT NOT NULL,
                timestamp REAL NOT NULL,
                arc_id TEXT NOT NULL
            )
        """)

        conn.execute("CREATE INDEX IF NOT EXISTS idx_exposures_user_time ON exposures(user_id, timestamp)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_exposures_arc ON exposures(arc_id)")

        conn.commit()
        logger.debug(f"[ExposureLedger] Initialized at {self.db_path}")

    def _insert(self, conn: sqlite3.Connection, entry: Exposure):
        conn.execute(
            """
            INSERT INTO exposures (
                user_id, artifact_type, canonical_identifier,
                creator_identifier, timestamp, arc_id
            ) VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                entry.user_id,
                entry.artifact_type.value,
                entry.canonical_identifier,
                entry.creator_identifier,
                to_timestamp(entry.timestamp),
                entry.arc_id,
            ),
        )

    def record(self, entry: Exposure):
        self.record_many([entry])

    def record_many(self, entries: Iterable[Exposure]) -> int:
        """Append entries in one transaction. Returns the number written."""
        entries = list(entries)
        if not entries:
            return 0

        conn = self._get_connection()
        with self._lock:
            try:
                for entry in entries:
                    self._insert(conn, entry)
                conn.commit()
            except sqlite3.Error:
                conn.rollback()
                raise

        logger.debug(f"[ExposureLedger] Recorded {len(entries)} exposure(s) for {entries[0].user_id}")
        return len(entries)

    def recent_window(
        self,
        user_id: str,
        days: int = 14,
        now: Optional[datetime] = None,
    ) -> List[Exposure]:
        """Exposures for `user_id` in the trailing `days`, newest first."""
        now = now or datetime.now(timezone.utc)
        cutoff = to_timestamp(now - timedelta(days=days))

        conn = self._get_connection()
        rows = conn.execute(
            """
            SELECT * FROM exposures
            WHERE user_id = ? AND timestamp >= ?
            ORDER BY timestamp DESC, id DESC
            """,
            (user_id, cutoff),
        ).fetchall()

        return [
            Exposure(
                user_id=row["user_id"],
                artifact_type=ArtifactType(row["artifact_type"]),
                canonical_identifier=row["canonical_identifier"],
                creator_identifier=row["creator_identifier"],
                timestamp=from_timestamp(row["timestamp"]),
                arc_id=row["arc_id"],
            )
            for row in rows
        ]

    def for_arc(self, arc_id: str) -> List[Exposure]:
        conn = self._get_connection()
        rows = conn.execute(
            "SELECT * FROM exposures WHERE arc_id = ? ORDER BY timestamp ASC, id ASC",
            (arc_id,),
        ).fetchall()
        return [
            Exposure(
                user_id=row["user_id"],
                artifact_type=ArtifactType(row["artifact_type"]),
                canonical_identifier=row["canonical_identifier"],
                creator_identifier=row["creator_identifier"],
                timestamp=from_timestamp(row["timestamp"]),
                arc_id=row["arc_id"],
            )
            for row in rows
        ]

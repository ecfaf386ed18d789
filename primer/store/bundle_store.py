"""
Daily bundle storage, keyed by (user, calendar date).

Writes are compare-and-set:
- create_if_absent() inserts only when no bundle exists for (user, date)
- mark_delivered() flips draft -> delivered exactly once

A generation lock table guards concurrent invocations for the same
(user, date); stale locks expire after a timeout.
"""

import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple

from primer.core.models import BundleStatus, DailyBundle, SuggestedReading
from primer.store.database import SQLiteStore, to_timestamp

logger = logging.getLogger(__name__)


BUNDLE_SCHEMA = """
    CREATE TABLE IF NOT EXISTS daily_bundles (
        user_id TEXT NOT NULL,
        id TEXT NOT NULL,
        arc_id TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'draft',
        created_at REAL NOT NULL,
        delivered_at REAL,
        payload TEXT NOT NULL,
        PRIMARY KEY (user_id, id)
    )
"""


def create_bundle_schema(conn: sqlite3.Connection):
    conn.execute(BUNDLE_SCHEMA)
    conn.execute("CREATE INDEX IF NOT EXISTS idx_bundles_arc ON daily_bundles(arc_id)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_bundles_created ON daily_bundles(created_at)")


class BundleStore(SQLiteStore):
    """SQLite store for daily bundles and their generation locks."""

    def __init__(self, db_path: Path = None):
        super().__init__(db_path)

    def _init_db(self):
        conn = self._get_connection()
        create_bundle_schema(conn)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS generation_locks (
                user_id TEXT NOT NULL,
                date_id TEXT NOT NULL,
                started_at REAL NOT NULL,
                PRIMARY KEY (user_id, date_id)
            )
        """)

        conn.commit()
        logger.debug(f"[BundleStore] Initialized at {self.db_path}")

    # =========================================================================
    # Reads
    # =========================================================================

    def _row_to_bundle(self, row: sqlite3.Row) -> DailyBundle:
        bundle = DailyBundle.model_validate_json(row["payload"])
        # Status columns are authoritative; payload holds the generated content
        delivered_at = row["delivered_at"]
        return bundle.model_copy(update={
            "status": BundleStatus(row["status"]),
            "delivered_at": (
                datetime.fromtimestamp(delivered_at, tz=timezone.utc) if delivered_at else None
            ),
        })

    def get(self, user_id: str, date_id: str) -> Optional[DailyBundle]:
        conn = self._get_connection()
        row = conn.execute(
            "SELECT * FROM daily_bundles WHERE user_id = ? AND id = ?",
            (user_id, date_id),
        ).fetchone()
        return self._row_to_bundle(row) if row else None

    def bundles_for_arc(self, arc_id: str) -> List[DailyBundle]:
        conn = self._get_connection()
        rows = conn.execute(
            "SELECT * FROM daily_bundles WHERE arc_id = ? ORDER BY id ASC",
            (arc_id,),
        ).fetchall()
        return [self._row_to_bundle(row) for row in rows]

    def history(self, user_id: str, limit: int = 30, before: Optional[str] = None) -> List[DailyBundle]:
        """Most recent bundles first; `before` is an exclusive date key cursor."""
        conn = self._get_connection()
        if before:
            rows = conn.execute(
                "SELECT * FROM daily_bundles WHERE user_id = ? AND id < ? ORDER BY id DESC LIMIT ?",
                (user_id, before, limit),
            ).fetchall()
        else:
            rows = conn.execute(
                "SELECT * FROM daily_bundles WHERE user_id = ? ORDER BY id DESC LIMIT ?",
                (user_id, limit),
            ).fetchall()
        return [self._row_to_bundle(row) for row in rows]

    # =========================================================================
    # Writes
    # =========================================================================

    def create_if_absent(self, bundle: DailyBundle) -> bool:
        """
        Insert a bundle unless one already exists for (user, date).

        Returns:
            True if this call inserted the bundle
        """
        conn = self._get_connection()
        with self._lock:
            try:
                conn.execute(
                    """
                    INSERT INTO daily_bundles (user_id, id, arc_id, status, created_at, delivered_at, payload)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        bundle.user_id,
                        bundle.id,
                        bundle.arc_id,
                        bundle.status.value,
                        to_timestamp(bundle.created_at),
                        to_timestamp(bundle.delivered_at) if bundle.delivered_at else None,
                        bundle.model_dump_json(),
                    ),
                )
                conn.commit()
            except sqlite3.IntegrityError:
                conn.rollback()
                logger.warning(
                    f"[BundleStore] Bundle already exists for {bundle.user_id}/{bundle.id}; keeping stored one"
                )
                return False
        logger.info(f"[BundleStore] Created bundle {bundle.user_id}/{bundle.id} ({bundle.status.value})")
        return True

    def mark_delivered(self, user_id: str, date_id: str, when: Optional[datetime] = None) -> bool:
        """
        Transition draft -> delivered.

        Returns:
            True only for the call that performed the transition
        """
        when = when or datetime.now(timezone.utc)
        conn = self._get_connection()
        with self._lock:
            cursor = conn.execute(
                """
                UPDATE daily_bundles SET status = ?, delivered_at = ?
                WHERE user_id = ? AND id = ? AND status = ?
                """,
                (BundleStatus.DELIVERED.value, to_timestamp(when), user_id, date_id, BundleStatus.DRAFT.value),
            )
            conn.commit()
        return cursor.rowcount == 1

    def revert_delivered(self, user_id: str, date_id: str) -> bool:
        """Transition delivered -> draft after a failed exposure write."""
        conn = self._get_connection()
        with self._lock:
            cursor = conn.execute(
                """
                UPDATE daily_bundles SET status = ?, delivered_at = NULL
                WHERE user_id = ? AND id = ? AND status = ?
                """,
                (BundleStatus.DRAFT.value, user_id, date_id, BundleStatus.DELIVERED.value),
            )
            conn.commit()
        return cursor.rowcount == 1

    def set_suggested_reading(self, user_id: str, date_id: str, reading: SuggestedReading) -> bool:
        bundle = self.get(user_id, date_id)
        if bundle is None:
            return False
        updated = bundle.model_copy(update={"suggested_reading": reading})
        conn = self._get_connection()
        with self._lock:
            conn.execute(
                "UPDATE daily_bundles SET payload = ? WHERE user_id = ? AND id = ?",
                (updated.model_dump_json(), user_id, date_id),
            )
            conn.commit()
        return True

    # =========================================================================
    # Generation locks
    # =========================================================================

    def try_acquire_lock(
        self,
        user_id: str,
        date_id: str,
        timeout_seconds: float = 600,
    ) -> bool:
        """Try to acquire the generation lock for (user, date)."""
        conn = self._get_connection()
        now = datetime.now(timezone.utc).timestamp()

        with self._lock:
            row = conn.execute(
                "SELECT started_at FROM generation_locks WHERE user_id = ? AND date_id = ?",
                (user_id, date_id),
            ).fetchone()

            if row:
                if now - row["started_at"] > timeout_seconds:
                    logger.warning(f"[BundleStore] Breaking stale generation lock {user_id}/{date_id}")
                    conn.execute(
                        "DELETE FROM generation_locks WHERE user_id = ? AND date_id = ?",
                        (user_id, date_id),
                    )
                else:
                    return False

            try:
                conn.execute(
                    "INSERT INTO generation_locks (user_id, date_id, started_at) VALUES (?, ?, ?)",
                    (user_id, date_id, now),
                )
                conn.commit()
                return True
            except sqlite3.IntegrityError:
                # Another connection acquired it between the check and the insert
                conn.rollback()
                return False

    def release_lock(self, user_id: str, date_id: str):
        conn = self._get_connection()
        with self._lock:
            conn.execute(
                "DELETE FROM generation_locks WHERE user_id = ? AND date_id = ?",
                (user_id, date_id),
            )
            conn.commit()

    def lock_state(self, user_id: str, date_id: str) -> Tuple[bool, Optional[float]]:
        """Return (held, started_at) for diagnostics."""
        conn = self._get_connection()
        row = conn.execute(
            "SELECT started_at FROM generation_locks WHERE user_id = ? AND date_id = ?",
            (user_id, date_id),
        ).fetchone()
        return (row is not None, row["started_at"] if row else None)

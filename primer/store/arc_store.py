"""
Arc persistence.

At most one arc per user may lack completed_date. The invariant is held by a
partial unique index, so a second active arc cannot be inserted even by a
racing writer. Completion is a compare-and-set and never reversible.
"""

import logging
import sqlite3
import uuid
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from primer.core.exceptions import ArcStateError
from primer.core.models import Arc, ArcPhase
from primer.store.bundle_store import create_bundle_schema
from primer.store.database import SQLiteStore, from_timestamp, to_timestamp

logger = logging.getLogger(__name__)

# Fields update() may patch; completion goes through complete()
UPDATABLE_FIELDS = {
    "theme",
    "description",
    "short_description",
    "target_duration_days",
    "current_phase",
    "summary",
}


def new_arc_id() -> str:
    return f"arc-{uuid.uuid4().hex[:12]}"


class ArcStore(SQLiteStore):
    """SQLite store for arcs."""

    def __init__(self, db_path: Path = None):
        super().__init__(db_path)

    def _init_db(self):
        conn = self._get_connection()

        conn.execute("""
            CREATE TABLE IF NOT EXISTS arcs (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                theme TEXT NOT NULL,
                description TEXT NOT NULL,
                short_description TEXT NOT NULL DEFAULT '',
                start_date TEXT NOT NULL,
                target_duration_days INTEGER NOT NULL DEFAULT 7,
                current_phase TEXT NOT NULL DEFAULT 'early',
                completed_date REAL,
                summary TEXT
            )
        """)

        conn.execute("CREATE INDEX IF NOT EXISTS idx_arcs_user ON arcs(user_id)")
        conn.execute("""
            CREATE UNIQUE INDEX IF NOT EXISTS idx_arcs_one_active
            ON arcs(user_id) WHERE completed_date IS NULL
        """)

        # Bundle counts are read from the shared bundle table
        create_bundle_schema(conn)

        conn.commit()
        logger.debug(f"[ArcStore] Initialized at {self.db_path}")

    def _row_to_arc(self, row: sqlite3.Row) -> Arc:
        return Arc(
            id=row["id"],
            user_id=row["user_id"],
            theme=row["theme"],
            description=row["description"],
            short_description=row["short_description"],
            start_date=date.fromisoformat(row["start_date"]),
            target_duration_days=row["target_duration_days"],
            current_phase=ArcPhase(row["current_phase"]),
            completed_date=from_timestamp(row["completed_date"]),
            summary=row["summary"],
        )

    # =========================================================================
    # Reads
    # =========================================================================

    def active_arc(self, user_id: str) -> Optional[Arc]:
        """The user's arc without a completed_date, or None."""
        conn = self._get_connection()
        row = conn.execute(
            "SELECT * FROM arcs WHERE user_id = ? AND completed_date IS NULL",
            (user_id,),
        ).fetchone()
        return self._row_to_arc(row) if row else None

    def get(self, arc_id: str) -> Optional[Arc]:
        conn = self._get_connection()
        row = conn.execute("SELECT * FROM arcs WHERE id = ?", (arc_id,)).fetchone()
        return self._row_to_arc(row) if row else None

    def list_arcs(self, user_id: str) -> List[Arc]:
        conn = self._get_connection()
        rows = conn.execute(
            "SELECT * FROM arcs WHERE user_id = ? ORDER BY start_date ASC, rowid ASC",
            (user_id,),
        ).fetchall()
        return [self._row_to_arc(row) for row in rows]

    def bundle_count_for_arc(self, arc_id: str) -> int:
        conn = self._get_connection()
        row = conn.execute(
            "SELECT COUNT(*) AS n FROM daily_bundles WHERE arc_id = ?", (arc_id,)
        ).fetchone()
        return int(row["n"])

    # =========================================================================
    # Writes
    # =========================================================================

    def create(self, arc: Arc) -> Arc:
        """
        Insert a new arc.

        Raises:
            ArcStateError: if the arc is already completed, or the user
                already has an active arc
        """
        if arc.completed_date is not None:
            raise ArcStateError(
                "Cannot create an arc that is already completed",
                context={"arc_id": arc.id},
            )

        conn = self._get_connection()
        with self._lock:
            try:
                conn.execute(
                    """
                    INSERT INTO arcs (
                        id, user_id, theme, description, short_description,
                        start_date, target_duration_days, current_phase, summary
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        arc.id,
                        arc.user_id,
                        arc.theme,
                        arc.description,
                        arc.short_description,
                        arc.start_date.isoformat(),
                        arc.target_duration_days,
                        arc.current_phase.value,
                        arc.summary,
                    ),
                )
                conn.commit()
            except sqlite3.IntegrityError as e:
                conn.rollback()
                raise ArcStateError(
                    f"User {arc.user_id} already has an active arc",
                    context={"arc_id": arc.id, "error": str(e)},
                ) from e

        logger.info(f"[ArcStore] Created arc {arc.id} '{arc.theme}' for {arc.user_id}")
        return arc

    def update(self, arc_id: str, patch: Dict[str, Any]) -> Arc:
        """Apply a partial update. Returns the updated arc."""
        unknown = set(patch) - UPDATABLE_FIELDS
        if unknown:
            raise ArcStateError(
                f"Fields cannot be updated: {sorted(unknown)}",
                context={"arc_id": arc_id},
            )

        values = {}
        for key, value in patch.items():
            if key == "current_phase":
                value = ArcPhase(value).value
            values[key] = value

        if values:
            assignments = ", ".join(f"{key} = ?" for key in values)
            conn = self._get_connection()
            with self._lock:
                cursor = conn.execute(
                    f"UPDATE arcs SET {assignments} WHERE id = ?",
                    (*values.values(), arc_id),
                )
                conn.commit()
            if cursor.rowcount == 0:
                raise ArcStateError(f"Arc {arc_id} not found", context={"arc_id": arc_id})

        arc = self.get(arc_id)
        if arc is None:
            raise ArcStateError(f"Arc {arc_id} not found", context={"arc_id": arc_id})
        return arc

    def complete(
        self,
        arc_id: str,
        when: Optional[datetime] = None,
        summary: Optional[str] = None,
    ) -> bool:
        """
        Mark an arc completed if it is still active.

        Returns:
            True only for the call that performed the completion
        """
        when = when or datetime.now(timezone.utc)
        conn = self._get_connection()
        with self._lock:
            cursor = conn.execute(
                """
                UPDATE arcs SET completed_date = ?, summary = COALESCE(?, summary)
                WHERE id = ? AND completed_date IS NULL
                """,
                (to_timestamp(when), summary, arc_id),
            )
            conn.commit()

        completed = cursor.rowcount == 1
        if completed:
            logger.info(f"[ArcStore] Completed arc {arc_id}")
        return completed

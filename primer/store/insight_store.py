"""Session insight storage. Insight text is opaque here."""

import json
import logging
import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

from primer.core.models import SessionInsight
from primer.store.database import SQLiteStore, from_timestamp, to_timestamp

logger = logging.getLogger(__name__)

LIST_FIELDS = ("meaningful_connections", "revealed_interests", "personal_context", "revisit_later")


class InsightStore(SQLiteStore):
    def __init__(self, db_path: Path = None):
        super().__init__(db_path)

    def _init_db(self):
        conn = self._get_connection()

        conn.execute("""
            CREATE TABLE IF NOT EXISTS session_insights (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                arc_id TEXT NOT NULL,
                created_at REAL NOT NULL,
                meaningful_connections TEXT NOT NULL DEFAULT '[]',
                revealed_interests TEXT NOT NULL DEFAULT '[]',
                personal_context TEXT NOT NULL DEFAULT '[]',
                revisit_later TEXT NOT NULL DEFAULT '[]',
                raw_summary TEXT NOT NULL DEFAULT ''
            )
        """)

        conn.execute("CREATE INDEX IF NOT EXISTS idx_insights_user_time ON session_insights(user_id, created_at)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_insights_arc ON session_insights(arc_id)")

        conn.commit()
        logger.debug(f"[InsightStore] Initialized at {self.db_path}")

    def _row_to_insight(self, row: sqlite3.Row) -> SessionInsight:
        return SessionInsight(
            id=row["id"],
            user_id=row["user_id"],
            arc_id=row["arc_id"],
            created_at=from_timestamp(row["created_at"]),
            raw_summary=row["raw_summary"],
            **{field: json.loads(row[field]) for field in LIST_FIELDS},
        )

    def record(self, insight: SessionInsight):
        conn = self._get_connection()
        with self._lock:
            conn.execute(
                """
                INSERT OR REPLACE INTO session_insights (
                    id, user_id, arc_id, created_at,
                    meaningful_connections, revealed_interests,
                    personal_context, revisit_later, raw_summary
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    insight.id,
                    insight.user_id,
                    insight.arc_id,
                    to_timestamp(insight.created_at),
                    *(json.dumps(getattr(insight, field)) for field in LIST_FIELDS),
                    insight.raw_summary,
                ),
            )
            conn.commit()

    def recent(
        self,
        user_id: str,
        days: int = 14,
        now: Optional[datetime] = None,
    ) -> List[SessionInsight]:
        """Insights in the trailing `days`, newest first."""
        now = now or datetime.now(timezone.utc)
        cutoff = to_timestamp(now - timedelta(days=days))
        conn = self._get_connection()
        rows = conn.execute(
            "SELECT * FROM session_insights WHERE user_id = ? AND created_at >= ? ORDER BY created_at DESC",
            (user_id, cutoff),
        ).fetchall()
        return [self._row_to_insight(row) for row in rows]

    def for_arc(self, arc_id: str) -> List[SessionInsight]:
        conn = self._get_connection()
        rows = conn.execute(
            "SELECT * FROM session_insights WHERE arc_id = ? ORDER BY created_at ASC",
            (arc_id,),
        ).fetchall()
        return [self._row_to_insight(row) for row in rows]

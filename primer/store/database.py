"""
SQLite connection handling shared by the stores.

All stores can point at the same database file; each creates its own tables.
Connections are per store instance so tests can run against isolated
temporary databases.
"""

import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from primer.core.config import get_settings

logger = logging.getLogger(__name__)


def to_timestamp(value: datetime) -> float:
    """Convert a datetime to a unix timestamp (naive values are taken as UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


def from_timestamp(value: Optional[float]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


class SQLiteStore:
    """Base class: lazy connection, schema init on construction."""

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = Path(db_path or get_settings().storage.db_path)
        self._connection: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get this store's database connection."""
        if self._connection is None:
            if str(self.db_path) != ":memory:":
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._connection = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._connection.row_factory = sqlite3.Row
        return self._connection

    def _init_db(self):
        """Create tables and indexes. Subclasses override."""
        raise NotImplementedError

    def close(self):
        if self._connection is not None:
            self._connection.close()
            self._connection = None

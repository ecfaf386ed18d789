"""SQLite persistence for arcs, bundles, exposures and insights."""

from primer.store.arc_store import ArcStore, new_arc_id
from primer.store.bundle_store import BundleStore
from primer.store.database import SQLiteStore
from primer.store.exposure_ledger import ExposureLedger
from primer.store.insight_store import InsightStore

__all__ = [
    "ArcStore",
    "BundleStore",
    "ExposureLedger",
    "InsightStore",
    "SQLiteStore",
    "new_arc_id",
]

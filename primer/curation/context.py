"""
Context aggregation: everything a curation run needs, gathered read-only.

The trailing exposure window is reduced into a flat avoid-list plus a
per-type set of recent creators. Session insights are opaque user-derived
text; they are sanitized here before any prompt can echo them.
"""

import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set

from primer.core.config import get_settings
from primer.core.exceptions import NoActiveArcError
from primer.core.identity import identifier_set
from primer.core.models import Arc, ArtifactType, Exposure
from primer.store import ArcStore, ExposureLedger, InsightStore

logger = logging.getLogger(__name__)

MAX_INSIGHT_CHARS = 300
MAX_INSIGHTS = 12

_INSTRUCTION_PATTERNS = [
    re.compile(r"\b(ignore|forget|override)\s+(all\s+|any\s+|the\s+|your\s+)*(previous|prior|above|earlier)\s+(instructions?|prompts?|rules?|messages?)", re.IGNORECASE),
    re.compile(r"\bdisregard\s+(all\s+|any\s+|the\s+|your\s+)*(previous|prior|above|earlier)?\s*(instructions?|prompts?|rules?)", re.IGNORECASE),
    re.compile(r"\bsystem\s+prompt\b", re.IGNORECASE),
    re.compile(r"\byou\s+are\s+now\b", re.IGNORECASE),
    re.compile(r"\bact\s+as\b", re.IGNORECASE),
    re.compile(r"\bnew\s+instructions?\b", re.IGNORECASE),
    re.compile(r"</?\s*(system|assistant|user|human|instructions?)\s*>", re.IGNORECASE),
    re.compile(r"(^|\s)(system|assistant|human)\s*:", re.IGNORECASE),
    re.compile(r"```"),
]
_WHITESPACE = re.compile(r"\s+")


def sanitize_insight(text: str, max_chars: Optional[int] = MAX_INSIGHT_CHARS) -> str:
    """Strip instruction-like substrings from user-derived text."""
    if not text:
        return ""
    for pattern in _INSTRUCTION_PATTERNS:
        text = pattern.sub(" ", text)
    text = _WHITESPACE.sub(" ", text).strip()
    if max_chars is not None and len(text) > max_chars:
        text = text[: max_chars - 3].rstrip() + "..."
    return text


def sanitize_conversation(text: Optional[str]) -> Optional[str]:
    """Sanitize a conversation transcript line by line, keeping its length."""
    if not text:
        return None
    lines = [sanitize_insight(line, max_chars=None) for line in text.splitlines()]
    return "\n".join(line for line in lines if line) or None


@dataclass
class CurationContext:
    """Inputs for one generation run."""

    user_id: str
    arc: Arc
    day_in_arc: int
    exposures: List[Exposure] = field(default_factory=list)
    avoid_list: List[str] = field(default_factory=list)
    recent_creators: Dict[ArtifactType, List[str]] = field(default_factory=dict)
    insights: List[str] = field(default_factory=list)
    trace_id: str = "-"

    @property
    def is_final_day(self) -> bool:
        return self.day_in_arc >= self.arc.target_duration_days

    def recent_identifiers(self, artifact_type: ArtifactType) -> Set[str]:
        return identifier_set(
            e.canonical_identifier for e in self.exposures if e.artifact_type is artifact_type
        )

    def recent_creator_identifiers(self, artifact_type: ArtifactType) -> Set[str]:
        return identifier_set(
            e.creator_identifier for e in self.exposures if e.artifact_type is artifact_type
        )


def new_trace_id() -> str:
    return uuid.uuid4().hex[:8]


class ContextAggregator:
    """Builds a CurationContext from the stores. Never writes."""

    def __init__(
        self,
        arc_store: ArcStore,
        exposure_ledger: ExposureLedger,
        insight_store: InsightStore,
        exposure_window_days: Optional[int] = None,
        insight_window_days: Optional[int] = None,
    ):
        curation = get_settings().curation
        self.arc_store = arc_store
        self.exposure_ledger = exposure_ledger
        self.insight_store = insight_store
        self.exposure_window_days = (
            exposure_window_days if exposure_window_days is not None else curation.exposure_window_days
        )
        self.insight_window_days = (
            insight_window_days if insight_window_days is not None else curation.insight_window_days
        )

    def build(
        self,
        user_id: str,
        arc: Optional[Arc] = None,
        now: Optional[datetime] = None,
        trace_id: Optional[str] = None,
    ) -> CurationContext:
        now = now or datetime.now(timezone.utc)
        arc = arc or self.arc_store.active_arc(user_id)
        if arc is None:
            raise NoActiveArcError(user_id)

        exposures = self.exposure_ledger.recent_window(user_id, self.exposure_window_days, now)

        avoid_list: List[str] = []
        recent_creators: Dict[ArtifactType, List[str]] = {t: [] for t in ArtifactType}
        for exposure in exposures:
            if exposure.canonical_identifier not in avoid_list:
                avoid_list.append(exposure.canonical_identifier)
            creators = recent_creators[exposure.artifact_type]
            if exposure.creator_identifier and exposure.creator_identifier not in creators:
                creators.append(exposure.creator_identifier)

        insights: List[str] = []
        for insight in self.insight_store.recent(user_id, self.insight_window_days, now):
            for line in insight.as_strings():
                cleaned = sanitize_insight(line)
                if cleaned:
                    insights.append(cleaned)
        insights = insights[:MAX_INSIGHTS]

        context = CurationContext(
            user_id=user_id,
            arc=arc,
            day_in_arc=self.arc_store.bundle_count_for_arc(arc.id) + 1,
            exposures=exposures,
            avoid_list=avoid_list,
            recent_creators=recent_creators,
            insights=insights,
            trace_id=trace_id or new_trace_id(),
        )
        logger.info(
            f"[ContextAggregator] [{context.trace_id}] user={user_id} arc='{arc.theme}' "
            f"day={context.day_in_arc}/{arc.target_duration_days} exposures={len(exposures)} "
            f"insights={len(insights)}"
        )
        return context

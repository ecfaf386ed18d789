"""
Curation Orchestrator - one daily bundle per (user, date).

Pipeline (each step consumes the previous step's output):

    1. Active arc + phase      (NoActiveArcError if there is none)
    2. Context aggregation     (read-only)
    3. Triple proposal         (one generation call)
    4. Coherence repair        (at most one replacement per image/text)
    5. Link resolution         (three independent bounded loops, concurrent)
    6. Framing                 (only now: sees the final, resolved artifacts)
    7. Persist as draft        (compare-and-set insert)

Exposures are written later, once, when the bundle is delivered.
A generation failure anywhere aborts the run and nothing is persisted.
"""

import logging
import re
import time
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Dict, Optional

from primer.core.config import get_settings
from primer.core.exceptions import (
    BundleNotFoundError,
    GenerationInProgressError,
    NoActiveArcError,
    ValidationError,
)
from primer.core.identity import exposure_for
from primer.core.logging_config import log_stage
from primer.core.models import (
    ArcCompletion,
    ArtifactType,
    BundleStatus,
    CuratedArtifact,
    DailyBundle,
    SuggestedReading,
)
from primer.curation.arc_lifecycle import ArcLifecycleTracker
from primer.curation.coherence import CoherenceValidator
from primer.curation.context import ContextAggregator, new_trace_id
from primer.curation.link_resolution import LinkResolutionEngine
from primer.llm.generation import ContentGenerationClient
from primer.resolvers import ReadingResolver
from primer.store import ArcStore, BundleStore, ExposureLedger, InsightStore

logger = logging.getLogger(__name__)

DATE_ID_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def validate_date_id(date_id: str) -> str:
    """Bundles are keyed by calendar date, YYYY-MM-DD."""
    if not isinstance(date_id, str) or not DATE_ID_PATTERN.match(date_id):
        raise ValidationError(f"Invalid date key: {date_id!r}", context={"date_id": date_id})
    try:
        date.fromisoformat(date_id)
    except ValueError as e:
        raise ValidationError(f"Invalid date key: {date_id!r}", context={"date_id": date_id}) from e
    return date_id


class CurationOrchestrator:
    def __init__(
        self,
        arc_store: ArcStore,
        bundle_store: BundleStore,
        exposure_ledger: ExposureLedger,
        insight_store: InsightStore,
        generation: Optional[ContentGenerationClient] = None,
        resolution: Optional[LinkResolutionEngine] = None,
        reading_resolver: Optional[ReadingResolver] = None,
        lock_timeout_seconds: Optional[float] = None,
    ):
        self.arc_store = arc_store
        self.bundle_store = bundle_store
        self.exposure_ledger = exposure_ledger
        self.insight_store = insight_store

        self.generation = generation or ContentGenerationClient()
        self.resolution = resolution or LinkResolutionEngine(self.generation)
        self.reading_resolver = reading_resolver or ReadingResolver()
        self.coherence = CoherenceValidator(self.generation)
        self.aggregator = ContextAggregator(arc_store, exposure_ledger, insight_store)
        self.lifecycle = ArcLifecycleTracker(arc_store, bundle_store, insight_store, self.generation)
        self.lock_timeout_seconds = (
            lock_timeout_seconds
            if lock_timeout_seconds is not None
            else get_settings().curation.lock_timeout_seconds
        )

    @classmethod
    def from_db_path(cls, db_path: Optional[Path] = None, **kwargs) -> "CurationOrchestrator":
        """Build an orchestrator whose stores share one SQLite file."""
        db_path = db_path or get_settings().storage.db_path
        return cls(
            ArcStore(db_path),
            BundleStore(db_path),
            ExposureLedger(db_path),
            InsightStore(db_path),
            **kwargs,
        )

    # =========================================================================
    # Boundary operations
    # =========================================================================

    def get_bundle(self, user_id: str, date_id: str) -> Optional[DailyBundle]:
        return self.bundle_store.get(user_id, validate_date_id(date_id))

    async def get_or_generate(
        self,
        user_id: str,
        date_id: str,
        now: Optional[datetime] = None,
    ) -> DailyBundle:
        """
        Return the stored bundle for (user, date), generating it if absent.

        Raises:
            NoActiveArcError: no active arc to generate under
            GenerationInProgressError: another invocation holds the lock
            GenerationError: a generation response could not be parsed
        """
        validate_date_id(date_id)
        existing = self.bundle_store.get(user_id, date_id)
        if existing is not None:
            return existing

        if not self.bundle_store.try_acquire_lock(user_id, date_id, self.lock_timeout_seconds):
            existing = self.bundle_store.get(user_id, date_id)
            if existing is not None:
                return existing
            raise GenerationInProgressError(user_id, date_id)

        try:
            # Another invocation may have finished between the first read and the lock
            existing = self.bundle_store.get(user_id, date_id)
            if existing is not None:
                return existing

            bundle = await self.generate(user_id, date_id, now=now)
            if not self.bundle_store.create_if_absent(bundle):
                stored = self.bundle_store.get(user_id, date_id)
                if stored is not None:
                    return stored
            return bundle
        finally:
            self.bundle_store.release_lock(user_id, date_id)

    async def generate(
        self,
        user_id: str,
        date_id: str,
        now: Optional[datetime] = None,
    ) -> DailyBundle:
        """Run the full pipeline and return an unsaved draft bundle."""
        trace_id = new_trace_id()
        started = time.monotonic()
        now = now or datetime.now(timezone.utc)

        arc = self.lifecycle.active_arc(user_id)
        if arc is None:
            log_stage(logger, trace_id, "arc", "missing")
            raise NoActiveArcError(user_id)

        day_in_arc = self.lifecycle.day_in_arc(arc)
        arc = self.lifecycle.advance_phase(arc, day_in_arc)

        context = self.aggregator.build(user_id, arc=arc, now=now, trace_id=trace_id)
        log_stage(logger, trace_id, "context", "ready")

        triple = await self.generation.propose_triple(context)
        log_stage(logger, trace_id, "selection", "proposed", (time.monotonic() - started) * 1000)

        coherence = await self.coherence.reconcile(triple, context)

        outcomes = await self.resolution.resolve_all(coherence.triple, context)
        curated: Dict[ArtifactType, CuratedArtifact] = {
            artifact_type: outcome.to_curated() for artifact_type, outcome in outcomes.items()
        }
        warnings = [o.warning for o in outcomes.values() if o.degraded]
        log_stage(
            logger,
            trace_id,
            "resolution",
            f"done ({len(warnings)} degraded)",
            (time.monotonic() - started) * 1000,
        )

        framing_text = await self.generation.write_framing(context, curated)

        bundle = DailyBundle(
            id=date_id,
            user_id=user_id,
            arc_id=arc.id,
            day_in_arc=context.day_in_arc,
            music=curated[ArtifactType.MUSIC],
            image=curated[ArtifactType.IMAGE],
            text=curated[ArtifactType.TEXT],
            framing_text=framing_text,
            status=BundleStatus.DRAFT,
            created_at=now,
            warnings=warnings,
        )
        log_stage(logger, trace_id, "bundle", "assembled", (time.monotonic() - started) * 1000)
        return bundle

    def mark_delivered(self, user_id: str, date_id: str, when: Optional[datetime] = None) -> bool:
        """
        Record the first genuine interaction with a bundle.

        Only the call that flips draft -> delivered writes exposures. If the
        exposure write fails the bundle goes back to draft so a retry records them.
        """
        validate_date_id(date_id)
        bundle = self.bundle_store.get(user_id, date_id)
        if bundle is None:
            raise BundleNotFoundError(user_id, date_id)

        if not self.bundle_store.mark_delivered(user_id, date_id, when):
            return False

        entries = [
            exposure_for(bundle.artifact(artifact_type).proposal, user_id, bundle.arc_id)
            for artifact_type in ArtifactType
        ]
        if when is not None:
            entries = [e.model_copy(update={"timestamp": when}) for e in entries]
        try:
            self.exposure_ledger.record_many(entries)
        except Exception:
            logger.error(f"[Orchestrator] Exposure write failed for {user_id}/{date_id}; reverting to draft")
            self.bundle_store.revert_delivered(user_id, date_id)
            raise
        logger.info(f"[Orchestrator] Bundle {user_id}/{date_id} delivered; {len(entries)} exposures recorded")
        return True

    async def end_session(
        self,
        user_id: str,
        final_conversation: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[ArcCompletion]:
        return await self.lifecycle.close_session(user_id, final_conversation, now=now)

    async def attach_suggested_reading(
        self,
        user_id: str,
        date_id: str,
        title: str,
        rationale: str = "",
        query: Optional[str] = None,
    ) -> Optional[SuggestedReading]:
        """Resolve a reading suggestion to a link and store it on the bundle."""
        validate_date_id(date_id)
        if self.bundle_store.get(user_id, date_id) is None:
            raise BundleNotFoundError(user_id, date_id)

        url = await self.reading_resolver.resolve(title, query)
        if not url:
            return None

        reading = SuggestedReading(title=title, url=url, rationale=rationale)
        self.bundle_store.set_suggested_reading(user_id, date_id, reading)
        return reading

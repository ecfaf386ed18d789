"""
Arc Lifecycle Tracker.

Computes day-in-arc and phase, persists phase changes, and rolls an arc over
to the next one at session end. The active arc is always queried from the
arc store, never cached in process.
"""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from primer.core.config import get_settings, load_starter_arcs
from primer.core.exceptions import ArcStateError
from primer.core.models import Arc, ArcCompletion, ArcPhase
from primer.curation.context import sanitize_conversation, sanitize_insight
from primer.llm.generation import ContentGenerationClient
from primer.store import ArcStore, BundleStore, InsightStore, new_arc_id

logger = logging.getLogger(__name__)

EARLY_THRESHOLD = 0.33
MIDDLE_THRESHOLD = 0.66


def phase_for(day_in_arc: int, target_duration_days: int) -> ArcPhase:
    """
    Early up to 33% progress, middle up to 66%, then late.

    Progress counts the days already completed before `day_in_arc`, so day 1
    of any arc is early and day 5 of 7 is middle.
    """
    progress = (day_in_arc - 1) / max(target_duration_days, 1)
    if progress <= EARLY_THRESHOLD:
        return ArcPhase.EARLY
    if progress <= MIDDLE_THRESHOLD:
        return ArcPhase.MIDDLE
    return ArcPhase.LATE


class ArcLifecycleTracker:
    def __init__(
        self,
        arc_store: ArcStore,
        bundle_store: BundleStore,
        insight_store: InsightStore,
        generation: Optional[ContentGenerationClient] = None,
    ):
        self.arc_store = arc_store
        self.bundle_store = bundle_store
        self.insight_store = insight_store
        self._generation = generation

    @property
    def generation(self) -> ContentGenerationClient:
        if self._generation is None:
            self._generation = ContentGenerationClient()
        return self._generation

    def active_arc(self, user_id: str) -> Optional[Arc]:
        return self.arc_store.active_arc(user_id)

    def day_in_arc(self, arc: Arc) -> int:
        """Day number of the next bundle: persisted bundles + 1."""
        return self.arc_store.bundle_count_for_arc(arc.id) + 1

    def advance_phase(self, arc: Arc, day_in_arc: Optional[int] = None) -> Arc:
        """Persist a phase change only when the computed phase differs."""
        day = day_in_arc if day_in_arc is not None else self.day_in_arc(arc)
        phase = phase_for(day, arc.target_duration_days)
        if phase == arc.current_phase:
            return arc

        logger.info(
            f"[ArcLifecycle] Arc '{arc.theme}' phase {arc.current_phase.value} -> {phase.value} "
            f"(day {day}/{arc.target_duration_days})"
        )
        return self.arc_store.update(arc.id, {"current_phase": phase})

    def complete_arc(self, arc: Arc, summary: Optional[str] = None, when: Optional[datetime] = None) -> bool:
        """One-way completion. Returns False if the arc was already completed."""
        return self.arc_store.complete(arc.id, when=when, summary=summary)

    # =========================================================================
    # Session end
    # =========================================================================

    async def close_session(
        self,
        user_id: str,
        final_conversation: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[ArcCompletion]:
        """
        Roll the active arc over if its target duration has been reached.

        Summary and next-arc content are generated before any write. Then the
        current arc is completed and the next arc created, as two sequential
        writes. Only the caller whose completion succeeds creates the next arc.

        Returns:
            ArcCompletion, or None if no rollover happened
        """
        now = now or datetime.now(timezone.utc)
        arc = self.arc_store.active_arc(user_id)
        if arc is None:
            logger.info(f"[ArcLifecycle] No active arc for {user_id}; nothing to close")
            return None

        days_done = self.arc_store.bundle_count_for_arc(arc.id)
        if days_done < arc.target_duration_days:
            return None

        logger.info(f"[ArcLifecycle] Arc '{arc.theme}' reached day {days_done}; rolling over")

        bundles = self.bundle_store.bundles_for_arc(arc.id)
        insights = []
        for insight in self.insight_store.for_arc(arc.id):
            for line in insight.as_strings():
                cleaned = sanitize_insight(line)
                if cleaned:
                    insights.append(cleaned)

        summary = await self.generation.summarize_arc(arc, bundles, insights)
        proposal = await self.generation.propose_next_arc(
            arc, insights, sanitize_conversation(final_conversation)
        )

        if not self.complete_arc(arc, summary=summary, when=now):
            logger.info(f"[ArcLifecycle] Arc {arc.id} was already completed by another session")
            return None

        next_arc = Arc(
            id=new_arc_id(),
            user_id=user_id,
            theme=proposal.theme,
            description=proposal.description,
            short_description=proposal.short_description,
            start_date=(now + timedelta(days=1)).date(),
            target_duration_days=get_settings().curation.target_duration_days,
            current_phase=ArcPhase.EARLY,
        )
        self.arc_store.create(next_arc)
        logger.info(f"[ArcLifecycle] Created next arc '{next_arc.theme}' for {user_id}")

        return ArcCompletion(completed_arc_id=arc.id, summary=summary, next_arc=next_arc)

    # =========================================================================
    # Seeding
    # =========================================================================

    def seed_starter_arc(self, user_id: str, start: Optional[date] = None) -> Arc:
        """Create the configured welcome arc for a user with no active arc."""
        if self.arc_store.active_arc(user_id) is not None:
            raise ArcStateError(f"User {user_id} already has an active arc", context={"user_id": user_id})

        starters = load_starter_arcs()
        if not starters:
            raise ArcStateError("No starter arcs configured")
        starter = starters[0]

        arc = Arc(
            id=new_arc_id(),
            user_id=user_id,
            theme=starter["theme"],
            description=starter["description"].strip(),
            short_description=starter.get("short_description", ""),
            start_date=start or datetime.now(timezone.utc).date(),
            target_duration_days=starter.get(
                "target_duration_days", get_settings().curation.target_duration_days
            ),
            current_phase=ArcPhase.EARLY,
        )
        return self.arc_store.create(arc)

"""Daily curation pipeline."""

from primer.curation.arc_lifecycle import ArcLifecycleTracker, phase_for
from primer.curation.coherence import CoherenceResult, CoherenceValidator
from primer.curation.context import ContextAggregator, CurationContext, sanitize_insight
from primer.curation.link_resolution import (
    MAX_IMAGE_ATTEMPTS,
    MAX_MUSIC_ATTEMPTS,
    MAX_TEXT_ATTEMPTS,
    LinkResolutionEngine,
    ResolutionOutcome,
)
from primer.curation.orchestrator import CurationOrchestrator, validate_date_id

__all__ = [
    # Arc lifecycle
    "ArcLifecycleTracker",
    "phase_for",
    # Context
    "ContextAggregator",
    "CurationContext",
    "sanitize_insight",
    # Coherence
    "CoherenceResult",
    "CoherenceValidator",
    # Resolution
    "LinkResolutionEngine",
    "ResolutionOutcome",
    "MAX_MUSIC_ATTEMPTS",
    "MAX_IMAGE_ATTEMPTS",
    "MAX_TEXT_ATTEMPTS",
    # Orchestration
    "CurationOrchestrator",
    "validate_date_id",
]

"""
Link Resolution Engine - per-type bounded retry.

Each artifact type runs its own loop:

    resolve candidate -> found and not a recent duplicate? done
                      -> otherwise count the failure; at MAX give up and keep
                         the last candidate, else ask for an alternative

The three loops share no mutable state and run concurrently. Attempts within
one loop are strictly sequential. Exhaustion degrades to an empty (or
duplicate) reference plus a warning; it never raises.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from primer.core.identity import canonical_identifier, creator_identifier
from primer.core.logging_config import log_resolution
from primer.core.models import ArtifactType, CuratedArtifact, ProposalTriple, ResolvedReference
from primer.curation.context import CurationContext
from primer.llm.generation import ContentGenerationClient
from primer.resolvers import ImageResolver, MusicResolver

logger = logging.getLogger(__name__)

MAX_MUSIC_ATTEMPTS = 5
MAX_IMAGE_ATTEMPTS = 3
MAX_TEXT_ATTEMPTS = 3

MAX_ATTEMPTS = {
    ArtifactType.MUSIC: MAX_MUSIC_ATTEMPTS,
    ArtifactType.IMAGE: MAX_IMAGE_ATTEMPTS,
    ArtifactType.TEXT: MAX_TEXT_ATTEMPTS,
}

REASON_NOT_FOUND = {
    ArtifactType.MUSIC: "not found in the music catalog",
    ArtifactType.IMAGE: "not found on Wikimedia Commons",
}
REASON_DUPLICATE = "shown too recently"
REASON_RECENT_AUTHOR = "author appeared recently"


@dataclass
class ResolutionOutcome:
    """Final state of one artifact type's retry loop."""

    artifact_type: ArtifactType
    proposal: object
    reference: Optional[ResolvedReference] = None
    attempts: int = 1
    rejected: List[object] = field(default_factory=list)
    warning: Optional[str] = None

    @property
    def degraded(self) -> bool:
        return self.warning is not None

    def to_curated(self) -> CuratedArtifact:
        return CuratedArtifact(
            proposal=self.proposal,
            reference=self.reference,
            attempts=self.attempts,
            warning=self.warning,
        )


class LinkResolutionEngine:
    def __init__(
        self,
        generation: ContentGenerationClient,
        music_resolver: Optional[MusicResolver] = None,
        image_resolver: Optional[ImageResolver] = None,
        max_attempts: Optional[Dict[ArtifactType, int]] = None,
    ):
        self.generation = generation
        self.music_resolver = music_resolver or MusicResolver()
        self.image_resolver = image_resolver or ImageResolver()
        self.max_attempts = {**MAX_ATTEMPTS, **(max_attempts or {})}

    async def check(
        self,
        artifact_type: ArtifactType,
        candidate,
        context: CurationContext,
    ) -> Tuple[Optional[ResolvedReference], Optional[str]]:
        """
        Resolve one candidate.

        Returns:
            (reference, rejection reason). A None reason means accepted.
        """
        if artifact_type is ArtifactType.TEXT:
            # No external lookup for text; only the recent-author check
            if creator_identifier(candidate.author) in context.recent_creator_identifiers(ArtifactType.TEXT):
                return None, REASON_RECENT_AUTHOR
            return None, None

        resolver = self.music_resolver if artifact_type is ArtifactType.MUSIC else self.image_resolver
        reference = await resolver.resolve(candidate)
        if reference is None:
            return None, REASON_NOT_FOUND[artifact_type]

        identifier = canonical_identifier(candidate.title, candidate.exposure_creator)
        if identifier in context.recent_identifiers(artifact_type):
            return reference, REASON_DUPLICATE
        return reference, None

    async def resolve(
        self,
        artifact_type: ArtifactType,
        proposal,
        context: CurationContext,
        companions: Optional[dict] = None,
    ) -> ResolutionOutcome:
        """Run the bounded retry loop for one artifact type."""
        limit = self.max_attempts[artifact_type]
        attempt = 0
        candidate = proposal
        rejected: List[object] = []

        while True:
            reference, reason = await self.check(artifact_type, candidate, context)
            log_resolution(logger, context.trace_id, artifact_type.value, attempt + 1, reason or "accepted")

            if reason is None:
                return ResolutionOutcome(
                    artifact_type=artifact_type,
                    proposal=candidate,
                    reference=reference,
                    attempts=attempt + 1,
                    rejected=rejected,
                )

            rejected.append(candidate)
            attempt += 1
            if attempt >= limit:
                warning = (
                    f"{artifact_type.value}: gave up after {attempt} attempt(s) "
                    f"({reason}); kept {candidate.describe()}"
                )
                logger.warning(f"[LinkResolution] [{context.trace_id}] {warning}")
                return ResolutionOutcome(
                    artifact_type=artifact_type,
                    proposal=candidate,
                    reference=reference,
                    attempts=attempt,
                    rejected=rejected,
                    warning=warning,
                )

            candidate = await self.generation.propose_alternative(
                artifact_type, context, list(rejected), reason, companions
            )

    async def resolve_all(
        self,
        triple: ProposalTriple,
        context: CurationContext,
    ) -> Dict[ArtifactType, ResolutionOutcome]:
        """
        Run the three loops concurrently and wait for all of them.

        If one loop raises, the others are cancelled before the error
        propagates so no orphaned loop keeps calling the model.
        """
        tasks = {
            t: asyncio.create_task(self.resolve(t, triple.get(t), context, companions=triple.others(t)))
            for t in ArtifactType
        }
        try:
            await asyncio.gather(*tasks.values())
        except BaseException:
            for task in tasks.values():
                task.cancel()
            await asyncio.gather(*tasks.values(), return_exceptions=True)
            raise
        return {t: task.result() for t, task in tasks.items()}

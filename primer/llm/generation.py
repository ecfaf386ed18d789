"""
Content Generation Client - structured curator requests.

Turns curation context into one of a fixed set of response shapes:
- artifact-triple proposal
- single-artifact alternative / coherence replacement
- coherence verdict
- framing text
- arc summary and next-arc proposal

Every method is one LLM call. Shape failures raise GenerationError and are
never retried here; only proposal-level retries (in the resolution engine)
exist.
"""

import logging
import time
from typing import TYPE_CHECKING, Optional, Sequence

from primer.core.logging_config import log_llm_call
from primer.core.models import (
    Arc,
    ArcSummary,
    ArtifactType,
    CoherenceIssue,
    CoherenceVerdict,
    CuratedArtifact,
    DailyBundle,
    FramingResponse,
    NextArcProposal,
    PROPOSAL_TYPES,
    ProposalTriple,
)
from primer.llm import prompts
from primer.llm.client import LLMClient, get_llm_client
from primer.llm.response_parser import ResponseParser, get_response_parser

if TYPE_CHECKING:
    from primer.curation.context import CurationContext

logger = logging.getLogger(__name__)


class ContentGenerationClient:
    """Curator roles on top of a raw LLM client."""

    def __init__(
        self,
        llm_client: Optional[LLMClient] = None,
        parser: Optional[ResponseParser] = None,
    ):
        self.llm = llm_client or get_llm_client()
        self.parser = parser or get_response_parser()

    async def _call(self, role: str, system: str, user: str, trace_id: str = "-") -> str:
        started = time.monotonic()
        response = await self.llm.call(system, user, role=role)
        log_llm_call(logger, trace_id, role, (time.monotonic() - started) * 1000)
        return response

    # =========================================================================
    # Selection
    # =========================================================================

    async def propose_triple(self, context: "CurationContext") -> ProposalTriple:
        """Request one music, one image and one text proposal in a single call."""
        response = await self._call(
            "selection",
            prompts.SELECTION_SYSTEM_PROMPT,
            prompts.build_selection_prompt(context),
            context.trace_id,
        )
        triple = self.parser.parse_model(response, ProposalTriple)
        logger.info(
            f"[ContentGeneration] Proposed triple: music={triple.music.title!r}, "
            f"image={triple.image.title!r}, text by {triple.text.author!r}"
        )
        return triple

    async def propose_alternative(
        self,
        artifact_type: ArtifactType,
        context: "CurationContext",
        failed: Sequence,
        reason: str,
        companions: Optional[dict] = None,
    ):
        """Request a single replacement after a failed resolution or duplicate."""
        response = await self._call(
            f"alternative:{artifact_type.value}",
            prompts.ALTERNATIVE_SYSTEM_PROMPTS[artifact_type],
            prompts.build_alternative_prompt(artifact_type, context, failed, reason, companions),
            context.trace_id,
        )
        return self.parser.parse_nested_model(
            response, artifact_type.value, PROPOSAL_TYPES[artifact_type]
        )

    # =========================================================================
    # Coherence
    # =========================================================================

    async def check_coherence(self, triple: ProposalTriple, context: "CurationContext") -> CoherenceVerdict:
        """Cross-check the triple for explicit references that are not honoured."""
        response = await self._call(
            "coherence",
            prompts.COHERENCE_SYSTEM_PROMPT,
            prompts.build_coherence_prompt(triple, context.arc),
            context.trace_id,
        )
        return self.parser.parse_model(response, CoherenceVerdict)

    async def propose_replacement(
        self,
        artifact_type: ArtifactType,
        triple: ProposalTriple,
        issues: Sequence[CoherenceIssue],
        context: "CurationContext",
    ):
        """Request exactly one coherence replacement for `artifact_type`."""
        response = await self._call(
            f"replacement:{artifact_type.value}",
            prompts.REPLACEMENT_SYSTEM_PROMPT,
            prompts.build_replacement_prompt(artifact_type, triple, issues, context),
            context.trace_id,
        )
        return self.parser.parse_nested_model(
            response, artifact_type.value, PROPOSAL_TYPES[artifact_type]
        )

    # =========================================================================
    # Framing
    # =========================================================================

    async def write_framing(
        self,
        context: "CurationContext",
        curated: dict[ArtifactType, CuratedArtifact],
    ) -> str:
        """Write framing prose for the finalized, resolved artifacts."""
        response = await self._call(
            "framing",
            prompts.FRAMING_SYSTEM_PROMPT,
            prompts.build_framing_prompt(context, curated),
            context.trace_id,
        )
        return self.parser.parse_model(response, FramingResponse).framing_text

    # =========================================================================
    # Arc completion
    # =========================================================================

    async def summarize_arc(
        self,
        arc: Arc,
        bundles: Sequence[DailyBundle],
        insights: Sequence[str],
    ) -> str:
        response = await self._call(
            "arc_summary",
            prompts.ARC_SUMMARY_SYSTEM_PROMPT,
            prompts.build_summary_prompt(arc, bundles, insights),
        )
        return self.parser.parse_model(response, ArcSummary).summary

    async def propose_next_arc(
        self,
        arc: Arc,
        insights: Sequence[str],
        final_conversation: Optional[str] = None,
    ) -> NextArcProposal:
        response = await self._call(
            "next_arc",
            prompts.NEXT_ARC_SYSTEM_PROMPT,
            prompts.build_next_arc_prompt(arc, insights, final_conversation),
        )
        proposal = self.parser.parse_model(response, NextArcProposal)
        logger.info(f"[ContentGeneration] Next arc proposed: {proposal.theme!r}")
        return proposal

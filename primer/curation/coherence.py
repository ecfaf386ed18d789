"""
Coherence Validator and the type-scoped replacement loop.

An explicit cross-reference (a text naming an artist whose work must be the
pictured artwork) is a hard violation. Issues on image or text trigger
exactly one replacement per type; music issues are never auto-repaired.
Replacements are not re-validated.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List

from primer.core.logging_config import log_stage
from primer.core.models import ArtifactType, CoherenceIssue, CoherenceVerdict, ProposalTriple
from primer.curation.context import CurationContext
from primer.llm.generation import ContentGenerationClient

logger = logging.getLogger(__name__)

# Repair order: the image usually has to honour a reference made by the text
REPAIRABLE_TYPES = (ArtifactType.IMAGE, ArtifactType.TEXT)


@dataclass
class CoherenceResult:
    triple: ProposalTriple
    verdict: CoherenceVerdict
    replaced: List[ArtifactType] = field(default_factory=list)
    ignored: List[CoherenceIssue] = field(default_factory=list)


class CoherenceValidator:
    def __init__(self, generation: ContentGenerationClient):
        self.generation = generation

    async def validate(self, triple: ProposalTriple, context: CurationContext) -> CoherenceVerdict:
        return await self.generation.check_coherence(triple, context)

    async def reconcile(self, triple: ProposalTriple, context: CurationContext) -> CoherenceResult:
        """Validate the triple and apply at most one replacement per repairable type."""
        started = time.monotonic()
        verdict = await self.validate(triple, context)
        result = CoherenceResult(triple=triple, verdict=verdict)

        if not verdict.needs_repair:
            log_stage(logger, context.trace_id, "coherence", "coherent", (time.monotonic() - started) * 1000)
            return result

        by_type: Dict[ArtifactType, List[CoherenceIssue]] = {}
        for issue in verdict.issues:
            by_type.setdefault(issue.artifact_type, []).append(issue)

        for issue in by_type.pop(ArtifactType.MUSIC, []):
            logger.info(f"[Coherence] [{context.trace_id}] Music issue not auto-repaired: {issue.problem}")
            result.ignored.append(issue)

        for artifact_type in REPAIRABLE_TYPES:
            issues = by_type.get(artifact_type)
            if not issues:
                continue
            before = result.triple.get(artifact_type)
            replacement = await self.generation.propose_replacement(
                artifact_type, result.triple, issues, context
            )
            result.triple = result.triple.replace(artifact_type, replacement)
            result.replaced.append(artifact_type)
            logger.info(
                f"[Coherence] [{context.trace_id}] Replaced {artifact_type.value}: "
                f"{before.describe()} -> {replacement.describe()}"
            )

        log_stage(
            logger,
            context.trace_id,
            "coherence",
            f"repaired {[t.value for t in result.replaced]}",
            (time.monotonic() - started) * 1000,
        )
        return result

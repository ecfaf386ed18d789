"""
Identity normalization for duplicate detection.

normalize() lowercases, strips periods, collapses whitespace and trims. Runs
of single-letter initials are then joined, so "T.S. Eliot" and "T. S. Eliot"
both become "ts eliot". The function is idempotent.
"""

import re
from typing import Iterable, Set

from primer.core.models import ArtifactType, Exposure

_WHITESPACE = re.compile(r"\s+")


def _join_initials(value: str) -> str:
    joined = []
    run = ""
    for token in value.split(" "):
        if len(token) == 1 and token.isalpha():
            run += token
            continue
        if run:
            joined.append(run)
            run = ""
        joined.append(token)
    if run:
        joined.append(run)
    return " ".join(joined)


def normalize(value: str) -> str:
    if not value:
        return ""
    value = value.lower().replace(".", "")
    value = _WHITESPACE.sub(" ", value).strip()
    return _join_initials(value)


def canonical_identifier(title: str, creator: str) -> str:
    """`normalize(title) - normalize(creator)`, used for music and image."""
    return f"{normalize(title)} - {normalize(creator)}"


def creator_identifier(creator: str) -> str:
    return normalize(creator)


def identifier_set(values: Iterable[str]) -> Set[str]:
    # Stored identifiers are re-normalized so comparison never depends on
    # how an older row was written
    return {normalize(value) for value in values if value}


def exposure_for(proposal, user_id: str, arc_id: str) -> Exposure:
    """Build the ledger entry for a delivered artifact."""
    return Exposure(
        user_id=user_id,
        artifact_type=ArtifactType(proposal.kind),
        canonical_identifier=canonical_identifier(proposal.title, proposal.exposure_creator),
        creator_identifier=creator_identifier(proposal.exposure_creator),
        arc_id=arc_id,
    )

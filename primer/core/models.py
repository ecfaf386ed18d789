"""Pydantic models for Personal Primer."""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Enums
# =============================================================================

class ArtifactType(str, Enum):
    """The three artifact slots of a daily bundle."""

    MUSIC = "music"
    IMAGE = "image"
    TEXT = "text"


class ArcPhase(str, Enum):
    """Position within an arc, derived from day-in-arc / target duration."""

    EARLY = "early"
    MIDDLE = "middle"
    LATE = "late"


class BundleStatus(str, Enum):
    """A bundle is a draft until the first genuine user interaction."""

    DRAFT = "draft"
    DELIVERED = "delivered"


class _Model(BaseModel):
    """Accepts both camelCase (generation responses) and snake_case input."""

    model_config = ConfigDict(populate_by_name=True)


# =============================================================================
# Arcs
# =============================================================================

class Arc(_Model):
    """A multi-day themed sequence of bundles."""

    id: str
    user_id: str
    theme: str
    description: str
    short_description: str = Field(default="", alias="shortDescription")
    start_date: date
    target_duration_days: int = Field(default=7, ge=1)
    current_phase: ArcPhase = ArcPhase.EARLY
    completed_date: Optional[datetime] = None
    summary: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.completed_date is None


class NextArcProposal(_Model):
    """Generation response: the theme that follows a completed arc."""

    theme: str
    description: str
    short_description: str = Field(default="", alias="shortDescription")


class ArcSummary(_Model):
    """Generation response: retrospective of a completed arc."""

    summary: str


class ArcCompletion(_Model):
    """Result of rolling an arc over at session end."""

    completed_arc_id: str
    summary: str
    next_arc: Arc


# =============================================================================
# Artifact proposals (tagged union, one shape per kind)
# =============================================================================

class MusicProposal(_Model):
    """A proposed musical work. Classical works carry composer/performer."""

    kind: Literal["music"] = "music"
    title: str
    artist: str
    composer: Optional[str] = None
    performer: Optional[str] = None
    is_classical: bool = Field(default=False, alias="isClassical")
    search_query: str = Field(default="", alias="searchQuery")

    @property
    def creator(self) -> str:
        return self.artist

    @property
    def exposure_creator(self) -> str:
        # Composer identifies a classical work better than whoever recorded it
        return self.composer or self.artist

    def describe(self) -> str:
        extra = []
        if self.composer and self.composer != self.artist:
            extra.append(f"composer {self.composer}")
        if self.performer:
            extra.append(f"performed by {self.performer}")
        suffix = f" ({', '.join(extra)})" if extra else ""
        return f'"{self.title}" by {self.artist}{suffix}'


class ImageProposal(_Model):
    """A proposed visual artwork."""

    kind: Literal["image"] = "image"
    title: str
    artist: str
    year: Optional[str] = None
    search_query: str = Field(default="", alias="searchQuery")

    @property
    def creator(self) -> str:
        return self.artist

    @property
    def exposure_creator(self) -> str:
        return self.artist

    def describe(self) -> str:
        year = f", {self.year}" if self.year else ""
        return f'"{self.title}" by {self.artist}{year}'


class TextProposal(_Model):
    """A proposed verbatim literary excerpt."""

    kind: Literal["text"] = "text"
    content: str
    source: str
    author: str

    @property
    def title(self) -> str:
        return self.source

    @property
    def creator(self) -> str:
        return self.author

    @property
    def exposure_creator(self) -> str:
        return self.author

    def describe(self) -> str:
        return f'"{self.content[:160]}" from {self.source} by {self.author}'


ArtifactProposal = Annotated[
    Union[MusicProposal, ImageProposal, TextProposal],
    Field(discriminator="kind"),
]

PROPOSAL_TYPES: dict[ArtifactType, type] = {
    ArtifactType.MUSIC: MusicProposal,
    ArtifactType.IMAGE: ImageProposal,
    ArtifactType.TEXT: TextProposal,
}


class ProposalTriple(_Model):
    """One proposal per artifact type, as returned by the selection call."""

    music: MusicProposal
    image: ImageProposal
    text: TextProposal

    def get(self, artifact_type: ArtifactType):
        return getattr(self, artifact_type.value)

    def replace(self, artifact_type: ArtifactType, proposal) -> "ProposalTriple":
        return self.model_copy(update={artifact_type.value: proposal})

    def others(self, artifact_type: ArtifactType) -> dict[ArtifactType, object]:
        return {t: self.get(t) for t in ArtifactType if t is not artifact_type}


# =============================================================================
# Coherence
# =============================================================================

class CoherenceIssue(_Model):
    """A violated cross-reference, tagged to the artifact that should change."""

    artifact_type: ArtifactType = Field(alias="artifactType")
    problem: str
    suggested_fix: str = Field(default="", alias="suggestedFix")


class CoherenceVerdict(_Model):
    """Generation response: coherence check over a proposal triple."""

    coherent: bool = True
    issues: list[CoherenceIssue] = Field(default_factory=list)

    @property
    def needs_repair(self) -> bool:
        return bool(self.issues)


# =============================================================================
# Resolution & bundles
# =============================================================================

class ResolvedReference(_Model):
    """A verified external link. Absence means no verifiable reference."""

    url: str
    source_url: Optional[str] = None


class CuratedArtifact(_Model):
    """A finalized proposal plus whatever reference resolution produced."""

    proposal: ArtifactProposal
    reference: Optional[ResolvedReference] = None
    attempts: int = 1
    warning: Optional[str] = None

    @property
    def url(self) -> str:
        return self.reference.url if self.reference else ""


class SuggestedReading(_Model):
    title: str
    url: str
    rationale: str = ""


class FramingResponse(_Model):
    """Generation response: framing prose for the finalized bundle."""

    framing_text: str = Field(alias="framingText")


class DailyBundle(_Model):
    """A day's three curated artifacts plus framing prose."""

    id: str  # YYYY-MM-DD
    user_id: str
    arc_id: str
    day_in_arc: int = 1
    music: CuratedArtifact
    image: CuratedArtifact
    text: CuratedArtifact
    framing_text: str
    status: BundleStatus = BundleStatus.DRAFT
    created_at: datetime = Field(default_factory=utc_now)
    delivered_at: Optional[datetime] = None
    suggested_reading: Optional[SuggestedReading] = None
    warnings: list[str] = Field(default_factory=list)

    def artifact(self, artifact_type: ArtifactType) -> CuratedArtifact:
        return getattr(self, artifact_type.value)


# =============================================================================
# Exposure & insights
# =============================================================================

class Exposure(_Model):
    """Append-only record that an artifact/creator was shown to a user."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    artifact_type: ArtifactType
    canonical_identifier: str
    creator_identifier: str
    timestamp: datetime = Field(default_factory=utc_now)
    arc_id: str


class SessionInsight(_Model):
    """Free-text insights extracted after a conversation (opaque here)."""

    id: str
    user_id: str
    arc_id: str
    created_at: datetime = Field(default_factory=utc_now)
    meaningful_connections: list[str] = Field(default_factory=list)
    revealed_interests: list[str] = Field(default_factory=list)
    personal_context: list[str] = Field(default_factory=list)
    revisit_later: list[str] = Field(default_factory=list)
    raw_summary: str = ""

    def as_strings(self) -> list[str]:
        lines = []
        if self.meaningful_connections:
            lines.append("Connections: " + ", ".join(self.meaningful_connections))
        if self.revealed_interests:
            lines.append("Interests: " + ", ".join(self.revealed_interests))
        if self.personal_context:
            lines.append("Context: " + ", ".join(self.personal_context))
        return lines

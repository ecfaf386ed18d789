"""Shared fixtures for the Primer test suite."""

import sys
from datetime import date
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from primer.core.models import (
    Arc,
    ArcPhase,
    CoherenceVerdict,
    ImageProposal,
    MusicProposal,
    ProposalTriple,
    ResolvedReference,
    TextProposal,
)
from primer.llm.generation import ContentGenerationClient
from primer.store import ArcStore, BundleStore, ExposureLedger, InsightStore

USER = "alice"


# =============================================================================
# Stores
# =============================================================================

@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "primer.db"


@pytest.fixture
def arc_store(db_path):
    store = ArcStore(db_path)
    yield store
    store.close()


@pytest.fixture
def bundle_store(db_path):
    store = BundleStore(db_path)
    yield store
    store.close()


@pytest.fixture
def exposure_ledger(db_path):
    store = ExposureLedger(db_path)
    yield store
    store.close()


@pytest.fixture
def insight_store(db_path):
    store = InsightStore(db_path)
    yield store
    store.close()


def make_arc(arc_id="arc-light", user_id=USER, target=7, phase=ArcPhase.EARLY, theme="Light"):
    return Arc(
        id=arc_id,
        user_id=user_id,
        theme=theme,
        description="A week of works about light and its absence.",
        short_description="Light and its absence.",
        start_date=date(2026, 3, 1),
        target_duration_days=target,
        current_phase=phase,
    )


@pytest.fixture
def active_arc(arc_store):
    return arc_store.create(make_arc())


# =============================================================================
# Proposals
# =============================================================================

def make_music(title="Clair de lune", artist="Claude Debussy", **kwargs):
    return MusicProposal(title=title, artist=artist, **kwargs)


def make_image(title="The Starry Night", artist="Vincent van Gogh", **kwargs):
    return ImageProposal(title=title, artist=artist, **kwargs)


def make_text(
    content="Light thinks it travels faster than anything but it is wrong.",
    source="Reaper Man",
    author="Terry Pratchett",
):
    return TextProposal(content=content, source=source, author=author)


def make_triple(music=None, image=None, text=None):
    return ProposalTriple(
        music=music or make_music(),
        image=image or make_image(),
        text=text or make_text(),
    )


# =============================================================================
# Collaborators
# =============================================================================

@pytest.fixture
def generation():
    """Generation client double: coherent by default, framing echoes nothing."""
    client = AsyncMock(spec=ContentGenerationClient)
    client.propose_triple.return_value = make_triple()
    client.check_coherence.return_value = CoherenceVerdict(coherent=True, issues=[])
    client.write_framing.return_value = "Today, three ways of looking at light."
    return client


@pytest.fixture
def music_resolver():
    resolver = AsyncMock()
    resolver.resolve.return_value = ResolvedReference(url="https://music.apple.com/us/album/clair-de-lune/1")
    return resolver


@pytest.fixture
def image_resolver():
    resolver = AsyncMock()
    resolver.resolve.return_value = ResolvedReference(
        url="https://upload.wikimedia.org/starry.jpg",
        source_url="https://commons.wikimedia.org/wiki/File:Starry.jpg",
    )
    return resolver

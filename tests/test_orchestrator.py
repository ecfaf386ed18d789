"""
End-to-end tests for the curation orchestrator with a mocked generation
client and mocked resolvers over a real temporary database.
"""

import asyncio
import sqlite3
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from primer.core.exceptions import (
    BundleNotFoundError,
    GenerationError,
    GenerationInProgressError,
    NoActiveArcError,
    ValidationError,
)
from primer.core.models import (
    ArcPhase,
    ArtifactType,
    BundleStatus,
    CoherenceIssue,
    CoherenceVerdict,
    NextArcProposal,
)
from primer.curation.link_resolution import LinkResolutionEngine
from primer.curation.orchestrator import CurationOrchestrator, validate_date_id

from conftest import USER, make_arc, make_image, make_music, make_text, make_triple

DATE = "2026-03-02"
NOW = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)


@pytest.fixture
def reading_resolver():
    resolver = AsyncMock()
    resolver.resolve.return_value = "https://en.wikipedia.org/wiki/Light"
    return resolver


@pytest.fixture
def orchestrator(
    arc_store, bundle_store, exposure_ledger, insight_store,
    generation, music_resolver, image_resolver, reading_resolver,
):
    resolution = LinkResolutionEngine(generation, music_resolver=music_resolver, image_resolver=image_resolver)
    return CurationOrchestrator(
        arc_store,
        bundle_store,
        exposure_ledger,
        insight_store,
        generation=generation,
        resolution=resolution,
        reading_resolver=reading_resolver,
        lock_timeout_seconds=600,
    )


class TestValidateDateId:
    def test_valid(self):
        assert validate_date_id("2026-03-02") == "2026-03-02"

    @pytest.mark.parametrize("bad", ["2026-3-2", "2026-02-30", "today", "", None])
    def test_invalid(self, bad):
        with pytest.raises(ValidationError):
            validate_date_id(bad)


class TestGeneration:
    @pytest.mark.asyncio
    async def test_missing_arc_raises(self, orchestrator, bundle_store):
        with pytest.raises(NoActiveArcError):
            await orchestrator.get_or_generate(USER, DATE)
        assert bundle_store.get(USER, DATE) is None
        assert bundle_store.lock_state(USER, DATE)[0] is False

    @pytest.mark.asyncio
    async def test_generates_draft_bundle(self, orchestrator, active_arc, bundle_store, exposure_ledger):
        bundle = await orchestrator.get_or_generate(USER, DATE, now=NOW)

        assert bundle.status is BundleStatus.DRAFT
        assert bundle.arc_id == active_arc.id
        assert bundle.day_in_arc == 1
        assert bundle.music.url.startswith("https://music.apple.com")
        assert bundle.image.reference.source_url.startswith("https://commons.wikimedia.org")
        assert bundle.text.reference is None
        assert bundle.framing_text == "Today, three ways of looking at light."
        assert bundle.warnings == []

        assert bundle_store.get(USER, DATE) == bundle
        # No exposures until delivery
        assert exposure_ledger.recent_window(USER, now=NOW) == []

    @pytest.mark.asyncio
    async def test_stored_bundle_returned_without_generation(self, orchestrator, active_arc, generation):
        first = await orchestrator.get_or_generate(USER, DATE, now=NOW)
        second = await orchestrator.get_or_generate(USER, DATE, now=NOW)

        assert second == first
        assert generation.propose_triple.await_count == 1

    @pytest.mark.asyncio
    async def test_framing_after_all_loops_and_sees_final_artifacts(
        self, orchestrator, active_arc, generation, image_resolver
    ):
        events = []
        replacement = make_image(title="The Milkmaid", artist="Johannes Vermeer")
        alternative = make_image(title="View of Delft", artist="Johannes Vermeer")

        generation.check_coherence.return_value = CoherenceVerdict(
            coherent=False,
            issues=[CoherenceIssue(artifact_type=ArtifactType.IMAGE, problem="Text names Vermeer")],
        )
        generation.propose_replacement.return_value = replacement
        generation.propose_alternative.return_value = alternative

        async def resolve_image(proposal):
            events.append(f"resolve:{proposal.title}")
            await asyncio.sleep(0)
            if proposal.title == "The Milkmaid":
                return None
            return image_resolver.resolve.return_value

        async def framing(context, curated):
            events.append("framing")
            return f"Framing for {curated[ArtifactType.IMAGE].proposal.title}"

        image_resolver.resolve.side_effect = resolve_image
        generation.write_framing.side_effect = framing

        bundle = await orchestrator.get_or_generate(USER, DATE, now=NOW)

        assert events == ["resolve:The Milkmaid", "resolve:View of Delft", "framing"]
        assert bundle.image.proposal == alternative
        assert bundle.framing_text == "Framing for View of Delft"
        generation.write_framing.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_generation_failure_persists_nothing(self, orchestrator, active_arc, generation, bundle_store):
        generation.propose_triple.side_effect = GenerationError("bad json", shape="ProposalTriple")

        with pytest.raises(GenerationError):
            await orchestrator.get_or_generate(USER, DATE, now=NOW)

        assert bundle_store.get(USER, DATE) is None
        assert bundle_store.lock_state(USER, DATE)[0] is False

    @pytest.mark.asyncio
    async def test_framing_failure_persists_nothing(self, orchestrator, active_arc, generation, bundle_store):
        generation.write_framing.side_effect = GenerationError("bad json", shape="FramingResponse")

        with pytest.raises(GenerationError):
            await orchestrator.get_or_generate(USER, DATE, now=NOW)

        assert bundle_store.get(USER, DATE) is None

    @pytest.mark.asyncio
    async def test_exhausted_music_still_persists_bundle(
        self, orchestrator, active_arc, generation, music_resolver, bundle_store
    ):
        music_resolver.resolve.return_value = None
        generation.propose_alternative.return_value = make_music(title="Unfindable", artist="Nobody")

        bundle = await orchestrator.get_or_generate(USER, DATE, now=NOW)

        assert bundle.music.url == ""
        assert bundle.music.attempts == 5
        assert len(bundle.warnings) == 1
        assert bundle_store.get(USER, DATE).music.reference is None

    @pytest.mark.asyncio
    async def test_phase_advanced_before_generation(self, orchestrator, arc_store, bundle_store, active_arc):
        # Four earlier bundles: today is day 5 of 7
        for day in range(1, 5):
            await orchestrator.get_or_generate(USER, f"2026-02-{20 + day:02d}", now=NOW)

        bundle = await orchestrator.get_or_generate(USER, DATE, now=NOW)

        assert bundle.day_in_arc == 5
        assert arc_store.get(active_arc.id).current_phase is ArcPhase.MIDDLE


class TestConcurrencyGuard:
    @pytest.mark.asyncio
    async def test_lock_held_raises(self, orchestrator, active_arc, bundle_store):
        assert bundle_store.try_acquire_lock(USER, DATE)
        with pytest.raises(GenerationInProgressError):
            await orchestrator.get_or_generate(USER, DATE, now=NOW)

    @pytest.mark.asyncio
    async def test_concurrent_calls_generate_once(self, orchestrator, active_arc, generation):
        gate = asyncio.Event()

        async def slow_triple(context):
            await gate.wait()
            return make_triple()

        generation.propose_triple.side_effect = slow_triple

        first = asyncio.create_task(orchestrator.get_or_generate(USER, DATE, now=NOW))
        await asyncio.sleep(0)
        with pytest.raises(GenerationInProgressError):
            await orchestrator.get_or_generate(USER, DATE, now=NOW)

        gate.set()
        bundle = await first
        assert bundle.id == DATE
        assert generation.propose_triple.await_count == 1

    @pytest.mark.asyncio
    async def test_lost_insert_race_returns_stored_bundle(self, orchestrator, active_arc, bundle_store):
        stored = await orchestrator.generate(USER, DATE, now=NOW)
        stored = stored.model_copy(update={"framing_text": "stored first"})
        original_create = bundle_store.create_if_absent

        def racing_create(bundle):
            original_create(stored)
            return original_create(bundle)

        bundle_store.create_if_absent = racing_create

        result = await orchestrator.get_or_generate(USER, DATE, now=NOW)
        assert result.framing_text == "stored first"


class TestDelivery:
    @pytest.mark.asyncio
    async def test_exposures_written_once(self, orchestrator, active_arc, exposure_ledger, bundle_store):
        await orchestrator.get_or_generate(USER, DATE, now=NOW)

        assert orchestrator.mark_delivered(USER, DATE, when=NOW) is True
        assert orchestrator.mark_delivered(USER, DATE, when=NOW) is False

        exposures = exposure_ledger.recent_window(USER, now=NOW)
        assert len(exposures) == 3
        assert {e.artifact_type for e in exposures} == set(ArtifactType)
        assert all(e.arc_id == active_arc.id for e in exposures)
        assert "the starry night - vincent van gogh" in {e.canonical_identifier for e in exposures}
        assert bundle_store.get(USER, DATE).status is BundleStatus.DELIVERED

    def test_missing_bundle(self, orchestrator):
        with pytest.raises(BundleNotFoundError):
            orchestrator.mark_delivered(USER, DATE)

    @pytest.mark.asyncio
    async def test_failed_exposure_write_reverts_to_draft(
        self, orchestrator, active_arc, exposure_ledger, bundle_store, monkeypatch
    ):
        await orchestrator.get_or_generate(USER, DATE, now=NOW)

        def failing_record_many(entries):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(exposure_ledger, "record_many", failing_record_many)
        with pytest.raises(sqlite3.OperationalError):
            orchestrator.mark_delivered(USER, DATE, when=NOW)

        assert bundle_store.get(USER, DATE).status is BundleStatus.DRAFT
        assert exposure_ledger.recent_window(USER, now=NOW) == []

        monkeypatch.undo()
        assert orchestrator.mark_delivered(USER, DATE, when=NOW) is True
        assert len(exposure_ledger.recent_window(USER, now=NOW)) == 3
        assert bundle_store.get(USER, DATE).status is BundleStatus.DELIVERED

    @pytest.mark.asyncio
    async def test_delivered_artifacts_become_duplicates_next_day(
        self, orchestrator, active_arc, generation, image_resolver
    ):
        await orchestrator.get_or_generate(USER, DATE, now=NOW)
        orchestrator.mark_delivered(USER, DATE, when=NOW)

        alternatives = {
            ArtifactType.MUSIC: make_music(title="Gymnopédie No. 1", artist="Erik Satie"),
            ArtifactType.IMAGE: make_image(title="Irises", artist="Claude Monet"),
            ArtifactType.TEXT: make_text(
                content="Light is the first of painters.", source="Nature", author="Ralph Waldo Emerson"
            ),
        }

        async def alternative(artifact_type, context, failed, reason, companions=None):
            return alternatives[artifact_type]

        generation.propose_alternative.side_effect = alternative

        tomorrow = await orchestrator.get_or_generate(USER, "2026-03-03", now=NOW)

        assert tomorrow.music.proposal.artist == "Erik Satie"
        assert tomorrow.image.proposal.title == "Irises"
        assert tomorrow.text.proposal.author == "Ralph Waldo Emerson"

        reasons = {
            call.args[0]: call.args[3] for call in generation.propose_alternative.await_args_list
        }
        assert reasons[ArtifactType.IMAGE] == "shown too recently"
        assert reasons[ArtifactType.TEXT] == "author appeared recently"


class TestSessionEnd:
    @pytest.mark.asyncio
    async def test_end_session_rolls_over_after_final_day(self, arc_store, orchestrator, generation):
        arc = arc_store.create(make_arc(target=1))
        generation.summarize_arc.return_value = "One bright day."
        generation.propose_next_arc.return_value = NextArcProposal(theme="Shadow", description="The other side.")

        await orchestrator.get_or_generate(USER, DATE, now=NOW)
        completion = await orchestrator.end_session(USER, "More shadows please", now=NOW)

        assert completion.completed_arc_id == arc.id
        assert arc_store.active_arc(USER).theme == "Shadow"
        assert arc_store.get(arc.id).completed_date is not None


class TestSuggestedReading:
    @pytest.mark.asyncio
    async def test_attach(self, orchestrator, active_arc, bundle_store):
        await orchestrator.get_or_generate(USER, DATE, now=NOW)
        reading = await orchestrator.attach_suggested_reading(USER, DATE, "Light", rationale="You asked about optics")

        assert reading.url == "https://en.wikipedia.org/wiki/Light"
        assert bundle_store.get(USER, DATE).suggested_reading == reading

    @pytest.mark.asyncio
    async def test_attach_without_result(self, orchestrator, active_arc, reading_resolver):
        await orchestrator.get_or_generate(USER, DATE, now=NOW)
        reading_resolver.resolve.return_value = None
        assert await orchestrator.attach_suggested_reading(USER, DATE, "Obscure") is None

"""Tests for the artifact, chat and synthesis services through TimelineCore."""

import asyncio
import json

import pytest
import pytest_asyncio

from artifact_timeline.core import TimelineCore
from artifact_timeline.errors import ErrorCode, TimelineError
from artifact_timeline.models import ArtifactKind, Entity, EntityType, Level, Risk
from artifact_timeline.resilience import CancelSignal
from artifact_timeline.services.chat import NO_CANDIDATES, NO_MATCHES, NO_TERMS
from artifact_timeline.services.synthesis import NO_MATCHES as NO_SYNTHESIS_MATCHES

from conftest import SPACE_ID, ScriptedProvider, make_summary, seed_summary

ROADMAP = dict(
    title="Roadmap review",
    summary="The roadmap was approved.",
    highlights=["Roadmap approved"],
)
HIRING = dict(
    title="Hiring plan",
    summary="Two engineers will join in April.",
    highlights=["Two hires"],
)


@pytest_asyncio.fixture
async def seeded(core):
    """Core with two saved summaries."""
    await core.save_summary(SPACE_ID, make_summary("gmail:a", **ROADMAP))
    await core.save_summary(SPACE_ID, make_summary("gmail:b", **HIRING))
    return core


@pytest_asyncio.fixture
async def scripted_core(settings, memory_store, fast_policy):
    provider = ScriptedProvider()
    timeline = TimelineCore(
        config=settings, object_store=memory_store, provider=provider, retry_policy=fast_policy
    )
    yield timeline
    await timeline.close()


class TestArtifactService:
    """Tests for summary and synthesis persistence."""

    @pytest.mark.asyncio
    async def test_summarize_saves_and_indexes(self, core, memory_store):
        saved = await core.summarize(
            SPACE_ID,
            {
                "title": "Kickoff",
                "text": "We kicked off the project. More later.",
                "source": "gmail",
                "sourceId": "msg-7",
                "sourceMetadata": {"dateISO": "2024-02-01T09:00:00Z"},
            },
        )
        assert saved.artifact_id == "gmail:msg-7"
        assert saved.content_date_iso == "2024-02-01T09:00:00Z"
        assert saved.model == "stub"

        stored = await memory_store.get_metadata(saved.document_id)
        assert stored.name == "Kickoff - Summary.json"
        assert json.loads(memory_store.body_of(saved.document_id))["documentId"] == saved.document_id

        result = await core.query(SPACE_ID, {})
        assert [r.artifact_id for r in result.results] == ["gmail:msg-7"]

    @pytest.mark.asyncio
    async def test_summarize_requires_source(self, core):
        with pytest.raises(TimelineError) as exc_info:
            await core.summarize(SPACE_ID, {"title": "t", "text": "x"})
        assert exc_info.value.code is ErrorCode.INVALID_REQUEST

    @pytest.mark.asyncio
    async def test_save_canonicalizes_entities(self, core):
        await core.add_aliases(
            SPACE_ID, [{"alias": "acme ltd uk", "canonical": "acme", "displayName": "Acme"}]
        )
        saved = await core.save_summary(
            SPACE_ID,
            make_summary(entities=[Entity(name="ACME LTD UK", type=EntityType.ORG), Entity(name="Acme")]),
        )
        assert saved.entities == [
            Entity(name="Acme", type=EntityType.ORG),
            Entity(name="acme"),
        ]

    @pytest.mark.asyncio
    async def test_resave_overwrites_same_document(self, core, memory_store):
        first = await core.save_summary(SPACE_ID, make_summary("gmail:a", **ROADMAP))
        second = await core.save_summary(
            SPACE_ID, make_summary("gmail:a", **{**ROADMAP, "summary": "Updated."})
        )
        assert second.document_id == first.document_id

        result = await core.query(SPACE_ID, {})
        assert len(result.results) == 1
        assert json.loads(memory_store.body_of(first.document_id))["summary"] == "Updated."

    @pytest.mark.asyncio
    async def test_backfill_content_date(self, seeded, memory_store):
        patched = await seeded.backfill_content_date(SPACE_ID, "gmail:a", "2024-05-01")
        assert patched.content_date_iso == "2024-05-01"
        assert json.loads(memory_store.body_of(patched.document_id))["contentDateISO"] == "2024-05-01"

        result = await seeded.query(SPACE_ID, {"dateFromISO": "2024-04-01"})
        assert [r.artifact_id for r in result.results] == ["gmail:a"]

    @pytest.mark.asyncio
    async def test_backfill_rejects_unknown_id_and_bad_date(self, seeded):
        with pytest.raises(TimelineError) as exc_info:
            await seeded.backfill_content_date(SPACE_ID, "gmail:zzz", "2024-05-01")
        assert exc_info.value.details["unknownArtifactIds"] == ["gmail:zzz"]

        with pytest.raises(TimelineError) as exc_info:
            await seeded.backfill_content_date(SPACE_ID, "gmail:a", "someday")
        assert exc_info.value.code is ErrorCode.INVALID_REQUEST

    @pytest.mark.asyncio
    async def test_backfill_after_rebuild_converges_index_id(self, core, memory_store):
        seeded = seed_summary(memory_store, make_summary("gmail:m1", **ROADMAP))
        await core.rebuild_index(SPACE_ID)

        patched = await core.backfill_content_date(SPACE_ID, "gmail:m1", "2024-06-01")
        assert patched.document_id == seeded.document_id

        rebuilt = await core.rebuild_index(SPACE_ID)
        assert [(e.id, e.document_id) for e in rebuilt.index.artifacts] == [
            ("gmail:m1", seeded.document_id)
        ]

    @pytest.mark.asyncio
    async def test_resave_after_rebuild_reuses_document(self, core, memory_store):
        seeded = seed_summary(memory_store, make_summary("gmail:m1", **ROADMAP))
        await core.rebuild_index(SPACE_ID)

        saved = await core.save_summary(
            SPACE_ID, make_summary("gmail:m1", **{**ROADMAP, "summary": "Updated."})
        )
        assert saved.document_id == seeded.document_id

        result = await core.query(SPACE_ID, {})
        assert [r.artifact_id for r in result.results] == ["gmail:m1"]

    @pytest.mark.asyncio
    async def test_oversized_summary_is_rejected(self, core):
        with pytest.raises(TimelineError) as exc_info:
            await core.save_summary(SPACE_ID, make_summary(summary="x" * 600_000))
        assert exc_info.value.code is ErrorCode.PAYLOAD_TOO_LARGE


class TestQueryThroughCore:
    """Tests for query wiring: aliases, validation and cancellation."""

    @pytest.mark.asyncio
    async def test_alias_added_after_save_still_resolves(self, core):
        await core.save_summary(
            SPACE_ID,
            make_summary(entities=[Entity(name="IBM Corp")], risks=[Risk(text="r", severity=Level.HIGH)]),
        )
        await core.add_aliases(SPACE_ID, [{"alias": "IBM", "canonical": "Acme"}])

        result = await core.query(SPACE_ID, {"entity": "ACME Inc.", "riskSeverity": "high"})
        assert len(result.results) == 1
        assert result.query.entity == "acme"

    @pytest.mark.asyncio
    async def test_invalid_request(self, core):
        with pytest.raises(TimelineError) as exc_info:
            await core.query(SPACE_ID, {"limitArtifacts": 0})
        assert exc_info.value.code is ErrorCode.INVALID_REQUEST
        assert exc_info.value.to_dict()["error_code"] == "invalid_request"

    @pytest.mark.asyncio
    async def test_cancelled_signal_aborts(self, core):
        signal = CancelSignal()
        signal.cancel()
        with pytest.raises(asyncio.CancelledError):
            await core.query(SPACE_ID, {}, signal=signal)

    @pytest.mark.asyncio
    async def test_rate_limit(self, core):
        for _ in range(3):
            await core.get_aliases(SPACE_ID, rate_key="user:1")
        with pytest.raises(TimelineError) as exc_info:
            await core.get_aliases(SPACE_ID, rate_key="user:1")
        assert exc_info.value.code is ErrorCode.RATE_LIMITED
        assert exc_info.value.status == 429
        await core.get_aliases(SPACE_ID, rate_key="user:2")

    @pytest.mark.asyncio
    async def test_rebuild_index(self, seeded):
        result = await seeded.rebuild_index(SPACE_ID)
        assert result.partial is False
        assert {entry.id for entry in result.index.artifacts} == {"gmail:a", "gmail:b"}


class TestChatService:
    """Tests for grounded chat."""

    @pytest.mark.asyncio
    async def test_answers_with_decorated_citations(self, seeded):
        response = await seeded.chat(SPACE_ID, {"query": "Was the roadmap approved?"})

        assert response.answer == "Based on the provided timeline artifacts, The roadmap was approved."
        assert [(c.artifact_id, c.excerpt) for c in response.citations] == [
            ("gmail:a", "Roadmap approved")
        ]
        assert response.citations[0].title == "Roadmap review"
        assert response.citations[0].content_date_iso == "2024-02-28T09:00:00Z"
        assert "gmail:b" not in response.used_artifact_ids

    @pytest.mark.asyncio
    async def test_empty_space(self, scripted_core):
        response = await scripted_core.chat(SPACE_ID, {"query": "roadmap"})
        assert response.answer == NO_CANDIDATES
        assert response.citations == []
        assert scripted_core.provider.calls == []

    @pytest.mark.asyncio
    async def test_no_meaningful_terms(self, seeded):
        response = await seeded.chat(SPACE_ID, {"query": "what is the"})
        assert response.answer == NO_TERMS

    @pytest.mark.asyncio
    async def test_no_keyword_matches(self, scripted_core):
        await scripted_core.save_summary(SPACE_ID, make_summary("gmail:a", **ROADMAP))
        response = await scripted_core.chat(SPACE_ID, {"query": "quarterly taxes"})
        assert response.answer == NO_MATCHES
        assert scripted_core.provider.calls == []

    @pytest.mark.asyncio
    async def test_filters_ungrounded_citations(self, scripted_core):
        await scripted_core.save_summary(SPACE_ID, make_summary("gmail:a", **ROADMAP))
        scripted_core.provider.responses["chat"] = json.dumps(
            {
                "answer": "Approved.",
                "citations": [
                    {"artifactId": "gmail:zzz", "excerpt": "invented"},
                    {"artifactId": "gmail:a", "excerpt": "approved"},
                ],
                "usedArtifactIds": ["gmail:zzz", "gmail:a"],
            }
        )

        response = await scripted_core.chat(SPACE_ID, {"query": "roadmap"})

        assert [c.artifact_id for c in response.citations] == ["gmail:a"]
        assert response.used_artifact_ids == ["gmail:a"]
        supplied = scripted_core.provider.calls[0]["payload"]["artifacts"]
        assert [a["artifactId"] for a in supplied] == ["gmail:a"]

    @pytest.mark.asyncio
    async def test_provider_bad_output_surfaces(self, scripted_core):
        await scripted_core.save_summary(SPACE_ID, make_summary("gmail:a", **ROADMAP))
        scripted_core.provider.responses["chat"] = "not json"
        with pytest.raises(TimelineError) as exc_info:
            await scripted_core.chat(SPACE_ID, {"query": "roadmap"})
        assert exc_info.value.code is ErrorCode.BAD_OUTPUT

    @pytest.mark.asyncio
    async def test_rejects_short_query(self, seeded):
        with pytest.raises(TimelineError) as exc_info:
            await seeded.chat(SPACE_ID, {"query": "x"})
        assert exc_info.value.code is ErrorCode.INVALID_REQUEST


class TestSynthesisService:
    """Tests for cross-artifact synthesis."""

    @pytest.mark.asyncio
    async def test_unknown_artifact_ids(self, seeded):
        with pytest.raises(TimelineError) as exc_info:
            await seeded.synthesize(
                SPACE_ID, {"mode": "status_report", "artifactIds": ["gmail:a", "gmail:nope"]}
            )
        assert exc_info.value.code is ErrorCode.INVALID_REQUEST
        assert exc_info.value.details["unknownArtifactIds"] == ["gmail:nope"]

    @pytest.mark.asyncio
    async def test_explicit_selection(self, seeded):
        response = await seeded.synthesize(
            SPACE_ID, {"mode": "decision_log", "artifactIds": ["gmail:b"], "title": "Hiring"}
        )
        assert response.used_artifact_ids == ["gmail:b"]
        assert response.synthesis.title == "Hiring"
        assert response.synthesis.content == "- Hiring plan: Two engineers will join in April."
        assert [c.artifact_id for c in response.citations] == ["gmail:b"]
        assert response.citations[0].title == "Hiring plan"
        assert response.saved_artifact_id is None

    @pytest.mark.asyncio
    async def test_explicit_selection_after_rebuild(self, core, memory_store):
        seeded = seed_summary(memory_store, make_summary("gmail:m1", **ROADMAP))
        await core.rebuild_index(SPACE_ID)

        response = await core.synthesize(SPACE_ID, {"mode": "briefing", "artifactIds": ["gmail:m1"]})
        assert response.used_artifact_ids == ["gmail:m1"]

        by_document = await core.synthesize(
            SPACE_ID, {"mode": "briefing", "artifactIds": [seeded.document_id]}
        )
        assert by_document.used_artifact_ids == ["gmail:m1"]

    @pytest.mark.asyncio
    async def test_save_to_timeline(self, seeded, memory_store):
        response = await seeded.synthesize(SPACE_ID, {"mode": "briefing", "saveToTimeline": True})

        assert response.synthesis.title == "Cross-artifact briefing"
        assert response.synthesis.synthesis_id.startswith("syn_")
        assert response.saved_artifact_id == response.synthesis.synthesis_id
        assert set(response.used_artifact_ids) == {"gmail:a", "gmail:b"}

        index = await seeded.query(SPACE_ID, {"kind": ["synthesis"]})
        assert [r.artifact_id for r in index.results] == [response.saved_artifact_id]

        # a saved synthesis is never an input to the next one
        again = await seeded.synthesize(SPACE_ID, {"mode": "open_loops"})
        assert set(again.used_artifact_ids) == {"gmail:a", "gmail:b"}
        assert again.synthesis.title == "Open loops synthesis"

    @pytest.mark.asyncio
    async def test_no_matches(self, scripted_core):
        response = await scripted_core.synthesize(SPACE_ID, {"mode": "status_report"})
        assert response.synthesis.content == NO_SYNTHESIS_MATCHES
        assert response.synthesis.synthesis_id.startswith("empty_")
        assert response.synthesis.title == "Status report synthesis"
        assert scripted_core.provider.calls == []

    @pytest.mark.asyncio
    async def test_evidence_only_when_requested(self, scripted_core):
        await scripted_core.save_summary(
            SPACE_ID,
            make_summary("gmail:a", **ROADMAP, evidence=[{"excerpt": "y" * 500}]),
        )
        await scripted_core.synthesize(SPACE_ID, {"mode": "briefing"})
        await scripted_core.synthesize(SPACE_ID, {"mode": "briefing", "includeEvidence": True})

        without, with_evidence = [call["payload"]["artifacts"][0] for call in scripted_core.provider.calls]
        assert "evidence" not in without
        assert len(with_evidence["evidence"][0]["excerpt"]) == 220

    @pytest.mark.asyncio
    async def test_synthesis_kind_in_index(self, seeded):
        response = await seeded.synthesize(SPACE_ID, {"mode": "briefing", "saveToTimeline": True})
        result = await seeded.rebuild_index(SPACE_ID)
        kinds = {entry.id: entry.kind for entry in result.index.artifacts}
        assert kinds[response.saved_artifact_id] is ArtifactKind.SYNTHESIS

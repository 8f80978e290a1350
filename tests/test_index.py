"""Tests for the artifact index: entries, upsert, revisions and rebuild."""

import json

import pytest

from artifact_timeline.errors import ErrorCode, TimelineError
from artifact_timeline.index import (
    ArtifactIndexService,
    build_index_from_listing,
    classify_filename,
    entry_from_artifact,
    is_artifact_file,
    sanitize_values,
    synthesis_filename,
    upsert_entry,
)
from artifact_timeline.models import (
    ArtifactIndex,
    ArtifactIndexEntry,
    ArtifactKind,
    Entity,
    OpenLoop,
    OpenLoopStatus,
    Risk,
    SourceMetadata,
    SynthesisArtifact,
    SynthesisMode,
)
from artifact_timeline.store import StoredFile

from conftest import SPACE_ID, make_summary, seed_index, seed_summary


def entry(artifact_id: str, document_id: str = None, **overrides) -> ArtifactIndexEntry:
    return ArtifactIndexEntry(id=artifact_id, document_id=document_id or f"doc-{artifact_id}", **overrides)


class TestEntryFromArtifact:
    """Tests for index entry denormalization."""

    def test_counts_only_open_loops(self):
        artifact = make_summary(
            open_loops=[
                OpenLoop(text="Send deck"),
                OpenLoop(text="Book venue", status=OpenLoopStatus.CLOSED),
            ],
            risks=[Risk(text="Budget overrun")],
        )
        result = entry_from_artifact(artifact, "doc-1")
        assert result.open_loops_count == 1
        assert result.risks_count == 1
        assert result.decisions_count == 0
        assert result.kind is ArtifactKind.SUMMARY
        assert result.document_id == "doc-1"

    def test_merges_source_metadata(self):
        artifact = make_summary(
            tags=["planning"],
            participants=["ana@example.com"],
            source_metadata=SourceMetadata(
                from_="bob@example.com", labels=["INBOX", "planning"], mime_type="message/rfc822"
            ),
        )
        result = entry_from_artifact(artifact, "doc-1")
        assert result.tags == ["planning", "INBOX", "message/rfc822"]
        assert result.participants == ["ana@example.com", "bob@example.com"]

    def test_caps_entities(self):
        artifact = make_summary(entities=[Entity(name=f"e{n}") for n in range(15)])
        assert len(entry_from_artifact(artifact, "doc-1").entities) == 10

    def test_synthesis_entry(self):
        artifact = SynthesisArtifact(
            id="syn_1", title="Weekly", mode=SynthesisMode.BRIEFING, content="text"
        )
        result = entry_from_artifact(artifact, "doc-s")
        assert result.id == "syn_1"
        assert result.kind is ArtifactKind.SYNTHESIS

    def test_sanitize_values(self):
        assert sanitize_values([" a ", "", None, "b", "a"]) == ["a", "b"]
        assert len(sanitize_values(str(n) for n in range(30))) == 20


class TestUpsert:
    """Tests for upsert_entry."""

    def test_appends_new_entry(self):
        index = ArtifactIndex(artifacts=[entry("a")])
        updated = upsert_entry(index, entry("b"))
        assert [e.id for e in updated.artifacts] == ["a", "b"]
        assert [e.id for e in index.artifacts] == ["a"]

    def test_replaces_by_id(self):
        index = ArtifactIndex(artifacts=[entry("a", title="old"), entry("b")])
        updated = upsert_entry(index, entry("a", title="new"))
        assert [(e.id, e.title) for e in updated.artifacts] == [("b", ""), ("a", "new")]

    def test_replaces_by_document_id(self):
        index = ArtifactIndex(artifacts=[entry("file-1", document_id="file-1")])
        updated = upsert_entry(index, entry("gmail:1", document_id="file-1"))
        assert [e.id for e in updated.artifacts] == ["gmail:1"]

    def test_bumps_updated_at(self):
        index = ArtifactIndex(updated_at_iso="2000-01-01T00:00:00Z")
        assert upsert_entry(index, entry("a")).updated_at_iso != "2000-01-01T00:00:00Z"

    def test_duplicate_ids_keep_last(self):
        index = ArtifactIndex.model_validate(
            {"artifacts": [entry("a", title="1").to_wire(), entry("a", title="2").to_wire()]}
        )
        assert [e.title for e in index.artifacts] == ["2"]


class TestIndexService:
    """Tests for reading, writing and recording the index."""

    @pytest.mark.asyncio
    async def test_load_missing_index(self, index_service):
        index, document_id = await index_service.load(SPACE_ID)
        assert index.artifacts == []
        assert index.owner_id == SPACE_ID
        assert document_id is None

    @pytest.mark.asyncio
    async def test_record_creates_then_updates(self, index_service, memory_store):
        await index_service.record(SPACE_ID, entry("a"))
        await index_service.record(SPACE_ID, entry("b"))
        await index_service.record(SPACE_ID, entry("a", title="renamed"))

        index, document_id = await index_service.load(SPACE_ID)
        assert [(e.id, e.title) for e in index.artifacts] == [("b", ""), ("a", "renamed")]
        assert index.index_document_id == document_id
        assert index.revision == 3
        stored = json.loads(memory_store.body_of(document_id))
        assert stored["indexDocumentId"] == document_id
        assert stored["artifacts"][1]["documentId"] == "doc-a"

    @pytest.mark.asyncio
    async def test_write_detects_revision_conflict(self, index_service, memory_store):
        document_id = seed_index(memory_store, [entry("a")], revision=3)
        stale = ArtifactIndex(revision=2, artifacts=[entry("a"), entry("b")])

        with pytest.raises(TimelineError) as exc_info:
            await index_service.write(SPACE_ID, document_id, stale)
        assert exc_info.value.code is ErrorCode.INDEX_CONFLICT
        assert exc_info.value.details["actualRevision"] == 3
        assert json.loads(memory_store.body_of(document_id))["revision"] == 3

    @pytest.mark.asyncio
    async def test_record_retries_after_conflict(self, store, memory_store):
        document_id = seed_index(memory_store, [entry("a")], revision=1)
        service = ArtifactIndexService(store)
        original_load = service.load
        raced = []

        async def racing_load(space_id):
            index, found = await original_load(space_id)
            if not raced:
                # a concurrent writer lands between our read and our write
                raced.append(1)
                bumped = index.model_copy(update={"revision": index.revision + 1})
                memory_store._bodies[document_id] = json.dumps(bumped.to_wire())
            return index, found

        service.load = racing_load
        updated = await service.record(SPACE_ID, entry("b"))

        assert [e.id for e in updated.artifacts] == ["a", "b"]
        assert json.loads(memory_store.body_of(document_id))["revision"] == 3

    @pytest.mark.asyncio
    async def test_unreadable_index_loads_empty(self, index_service, memory_store):
        document_id = memory_store.put_raw("artifacts_index.json", SPACE_ID, "[1, 2]")
        index, found = await index_service.load(SPACE_ID)
        assert found == document_id
        assert index.artifacts == []


class TestRebuild:
    """Tests for index rebuild from listings."""

    def test_classify_filename(self):
        assert classify_filename("Plan - Summary.json") == "summary"
        assert classify_filename("Picks - Selection.json") == "selection"
        assert classify_filename("synthesis_20240301_status_report_syn_ab12.json") == "synthesis"
        assert classify_filename("artifacts_index.json") is None

    def test_synthesis_filename_round_trips_through_classifier(self):
        name = synthesis_filename("2024-03-01T10:00:00Z", "open_loops", "syn_1")
        assert name == "synthesis_20240301_open_loops_syn_1.json"
        assert classify_filename(name) == "synthesis"

    def test_build_keeps_known_entries_and_adds_minimal_ones(self):
        existing = ArtifactIndex(
            revision=5,
            artifacts=[
                entry("gmail:1", document_id="f1", title="Rich", open_loops_count=2),
                entry("gone", document_id="f-gone"),
            ],
        )
        listing = [
            StoredFile(id="f1", name="Rich - Summary.json", modified_time="2024-01-02T00:00:00Z"),
            StoredFile(id="f2", name="New one - Summary.json", modified_time="2024-01-03T00:00:00Z"),
            StoredFile(
                id="f3",
                name="synthesis_20240101_briefing_syn_9.json",
                modified_time="2024-01-01T00:00:00Z",
            ),
            StoredFile(id="f4", name="Picks - Selection.json"),
            StoredFile(id="f5", name="artifacts_index.json"),
        ]
        index = build_index_from_listing(listing, existing)

        assert [e.id for e in index.artifacts] == ["f2", "gmail:1", "syn_9"]
        assert index.artifacts[0].title == "New one"
        assert index.artifacts[1].open_loops_count == 2
        assert index.artifacts[2].kind is ArtifactKind.SYNTHESIS
        assert index.revision == 5
        assert index.stats.total_summaries == 2
        assert index.stats.total_syntheses == 1
        assert index.stats.total_selection_sets == 1

    @pytest.mark.asyncio
    async def test_rebuild_reports_partial_when_cap_hit(self, index_service, memory_store):
        for n in range(7):
            memory_store.put_raw(f"Doc {n} - Summary.json", SPACE_ID, "{}")

        result = await index_service.rebuild(SPACE_ID, max_scan=5, page_size=2)
        assert result.partial is True
        assert result.documents_scanned == 5
        assert len(result.index.artifacts) == 5

    @pytest.mark.asyncio
    async def test_rebuild_complete_scan(self, index_service, memory_store):
        for n in range(3):
            memory_store.put_raw(f"Doc {n} - Summary.json", SPACE_ID, "{}")

        result = await index_service.rebuild(SPACE_ID, max_scan=5, page_size=2)
        assert result.partial is False
        assert result.documents_scanned == 3

        index, document_id = await index_service.load(SPACE_ID)
        assert document_id == result.document_id
        assert {e.title for e in index.artifacts} == {"Doc 0", "Doc 1", "Doc 2"}

    def test_build_from_cut_short_listing_keeps_unlisted_entries(self):
        existing = ArtifactIndex(
            artifacts=[
                entry("gmail:1", document_id="f1"),
                entry("gmail:old", document_id="f-old", open_loops_count=1),
            ],
        )
        listing = [StoredFile(id="f1", name="Rich - Summary.json")]

        partial = build_index_from_listing(listing, existing, complete=False)
        assert {e.id for e in partial.artifacts} == {"gmail:1", "gmail:old"}
        assert partial.stats.total_summaries == 2

        complete = build_index_from_listing(listing, existing)
        assert [e.id for e in complete.artifacts] == ["gmail:1"]

    def test_is_artifact_file(self):
        assert is_artifact_file("Plan - Summary.json")
        assert is_artifact_file("synthesis_20240301_briefing_syn_1.json")
        assert not is_artifact_file("Picks - Selection.json")
        assert not is_artifact_file("entity_aliases.json")
        assert not is_artifact_file("")

    @pytest.mark.asyncio
    async def test_partial_rebuild_keeps_entries_beyond_cap(self, index_service, memory_store):
        old = make_summary(
            "gmail:old", title="Old", open_loops=[OpenLoop(text="Reply to vendor")]
        )
        old_document = memory_store.put_raw("Old - Summary.json", SPACE_ID, json.dumps(old.to_wire()))
        await index_service.record(SPACE_ID, entry_from_artifact(old, old_document))
        for n in range(6):
            memory_store.put_raw(f"Doc {n} - Summary.json", SPACE_ID, "{}")

        result = await index_service.rebuild(SPACE_ID, max_scan=5, page_size=5)
        assert result.partial is True
        assert result.documents_scanned == 5
        assert len(result.index.artifacts) == 6

        kept = result.index.get("gmail:old")
        assert kept is not None
        assert kept.document_id == old_document
        assert kept.open_loops_count == 1

        index, _ = await index_service.load(SPACE_ID)
        assert index.get("gmail:old") is not None

    @pytest.mark.asyncio
    async def test_scan_cap_counts_only_artifact_files(self, index_service, memory_store):
        for n in range(5):
            memory_store.put_raw(f"Doc {n} - Summary.json", SPACE_ID, "{}")
        memory_store.put_raw("entity_aliases.json", SPACE_ID, "{}")
        memory_store.put_raw("Picks - Selection.json", SPACE_ID, "{}")
        await index_service.rebuild(SPACE_ID)

        result = await index_service.rebuild(SPACE_ID, max_scan=5, page_size=10)
        assert result.partial is False
        assert result.documents_scanned == 5
        assert len(result.index.artifacts) == 5
        assert result.index.stats.total_selection_sets == 1


class TestResolve:
    """Tests for mapping requested artifact ids to index entries."""

    @pytest.mark.asyncio
    async def test_matches_id_or_document_id(self, index_service):
        entries = [entry("gmail:a", document_id="f-a")]
        found, unknown = await index_service.resolve(SPACE_ID, entries, ["gmail:a", "f-a", "gmail:x"])
        assert found["gmail:a"].document_id == "f-a"
        assert found["f-a"].id == "gmail:a"
        assert unknown == ["gmail:x"]

    @pytest.mark.asyncio
    async def test_reads_listing_derived_entries(self, index_service, memory_store):
        seeded = seed_summary(memory_store, make_summary("gmail:m1"))
        result = await index_service.rebuild(SPACE_ID)
        assert [e.id for e in result.index.artifacts] == [seeded.document_id]

        found, unknown = await index_service.resolve(
            SPACE_ID, result.index.artifacts, ["gmail:m1", "gmail:nope"]
        )
        assert found["gmail:m1"].id == "gmail:m1"
        assert found["gmail:m1"].document_id == seeded.document_id
        assert unknown == ["gmail:nope"]

    @pytest.mark.asyncio
    async def test_unreadable_documents_are_skipped(self, index_service, memory_store):
        broken = memory_store.put_raw("Broken - Summary.json", SPACE_ID, "not json")
        entries = [entry(broken, document_id=broken)]

        found, unknown = await index_service.resolve(SPACE_ID, entries, ["gmail:m1"])
        assert found == {}
        assert unknown == ["gmail:m1"]

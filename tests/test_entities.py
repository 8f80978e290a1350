"""Tests for entity normalization, the alias table and canonicalization."""

import pytest

from artifact_timeline.entities import (
    AliasService,
    canonicalize_entities,
    normalize_alias_rows,
    normalize_entity_name,
    resolve_entity,
)
from artifact_timeline.models import AliasRow, Entity, EntityAliases, EntityType

from conftest import SPACE_ID


@pytest.fixture
def acme_aliases() -> EntityAliases:
    return EntityAliases(
        aliases=[
            AliasRow(alias="acme ltd uk", canonical="acme", display_name="Acme"),
            AliasRow(alias="ibm", canonical="acme", display_name="Acme", type=EntityType.ORG),
        ]
    )


class TestNormalizeEntityName:
    """Tests for name normalization."""

    def test_lowercases_and_collapses_whitespace(self):
        assert normalize_entity_name("  Acme   Widgets ") == "acme widgets"

    def test_strips_trailing_punctuation(self):
        assert normalize_entity_name("Acme!!") == "acme"

    @pytest.mark.parametrize(
        "raw",
        ["Acme Ltd", "Acme, Inc.", "ACME LLC", "Acme GmbH", "acme s.a.", "Acme Corp Ltd."],
    )
    def test_strips_corporate_suffixes(self, raw):
        assert normalize_entity_name(raw) == "acme"

    def test_keeps_suffix_in_the_middle(self):
        assert normalize_entity_name("Acme Ltd UK") == "acme ltd uk"

    def test_suffix_alone_is_not_a_trailing_word(self):
        assert normalize_entity_name("Inc") == "inc"

    @pytest.mark.parametrize(
        "raw",
        ["Acme Corp Ltd.", "  Foo,  Inc. ", "Bar Company Co", "Baz s.a.", "x", "", "Acme Ltd UK"],
    )
    def test_is_idempotent(self, raw):
        once = normalize_entity_name(raw)
        assert normalize_entity_name(once) == once


class TestAliasRows:
    """Tests for alias row normalization."""

    def test_normalizes_both_sides(self):
        rows = normalize_alias_rows([AliasRow(alias="IBM Corp.", canonical="ACME Ltd")])
        assert rows == [AliasRow(alias="ibm", canonical="acme")]

    def test_drops_self_aliases_and_empty_rows(self):
        rows = normalize_alias_rows(
            [
                AliasRow(alias="Acme Inc", canonical="acme"),
                AliasRow(alias="  ", canonical="acme"),
            ]
        )
        assert rows == []

    def test_later_duplicate_replaces_earlier(self):
        rows = normalize_alias_rows(
            [
                AliasRow(alias="ibm", canonical="acme", display_name="Acme"),
                AliasRow(alias="IBM", canonical="Acme", display_name="ACME Group"),
            ]
        )
        assert len(rows) == 1
        assert rows[0].display_name == "ACME Group"


class TestCanonicalize:
    """Tests for entity canonicalization."""

    def test_canonical_dedupe(self, acme_aliases):
        result = canonicalize_entities(
            [Entity(name="ACME LTD UK", type=EntityType.ORG)], acme_aliases
        )
        assert result == [Entity(name="Acme", type=EntityType.ORG)]

    def test_dedupes_by_canonical_and_type(self, acme_aliases):
        result = canonicalize_entities(
            [
                Entity(name="IBM", type=EntityType.ORG),
                Entity(name="Acme Ltd UK", type=EntityType.ORG),
                Entity(name="Beta Inc"),
            ],
            acme_aliases,
        )
        assert result == [
            Entity(name="Acme", type=EntityType.ORG),
            Entity(name="beta"),
        ]

    def test_row_type_wins(self, acme_aliases):
        result = canonicalize_entities([Entity(name="IBM", type=EntityType.PROJECT)], acme_aliases)
        assert result[0].type == EntityType.ORG

    def test_without_table_uses_normalized_names(self):
        result = canonicalize_entities([Entity(name="Acme Inc."), Entity(name="acme")], None)
        assert result == [Entity(name="acme")]

    def test_resolve_returns_canonical_not_display_name(self, acme_aliases):
        assert resolve_entity("IBM", acme_aliases) == "acme"
        assert resolve_entity("Beta Inc", acme_aliases) == "beta"
        assert resolve_entity("  ", acme_aliases) is None


class TestAliasService:
    """Tests for alias table persistence."""

    @pytest.mark.asyncio
    async def test_missing_table_reads_empty(self, store):
        table, document_id = await AliasService(store).read(SPACE_ID)
        assert table.aliases == []
        assert document_id is None

    @pytest.mark.asyncio
    async def test_add_then_read(self, store):
        service = AliasService(store)
        await service.add(SPACE_ID, [AliasRow(alias="IBM", canonical="Acme Ltd", display_name="Acme")])
        await service.add(SPACE_ID, [AliasRow(alias="Big Blue", canonical="acme")])

        table, document_id = await service.read(SPACE_ID)
        assert document_id is not None
        assert [(row.alias, row.canonical) for row in table.aliases] == [
            ("ibm", "acme"),
            ("big blue", "acme"),
        ]

    @pytest.mark.asyncio
    async def test_remove(self, store):
        service = AliasService(store)
        await service.add(SPACE_ID, [AliasRow(alias="ibm", canonical="acme")])
        table = await service.remove(SPACE_ID, "IBM")
        assert table.aliases == []

    @pytest.mark.asyncio
    async def test_undecodable_table_reads_empty(self, store, memory_store):
        memory_store.put_raw("entity_aliases.json", SPACE_ID, "{not json")
        table, document_id = await AliasService(store).read(SPACE_ID)
        assert table.aliases == []
        assert document_id is not None

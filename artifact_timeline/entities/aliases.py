"""
Entity alias table: normalization, canonicalization and persistence.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import structlog

from ..errors import TimelineError
from ..log import safe_error
from ..models import AliasRow, Entity, EntityAliases, decode_aliases, iso_now
from ..models.decode import DecodeFailure
from ..store import ResilientStore
from .normalize import normalize_entity_name

logger = structlog.get_logger()

ALIASES_FILENAME = "entity_aliases.json"


def normalize_alias_rows(rows: Iterable[AliasRow]) -> List[AliasRow]:
    """Normalize both sides of every row, drop self-aliases, dedupe.

    Rows are deduplicated by ``(alias, canonical, type)``; a later duplicate
    replaces an earlier one in place.
    """
    deduped: Dict[Tuple[str, str, str], AliasRow] = {}
    for row in rows:
        alias = normalize_entity_name(row.alias)
        canonical = normalize_entity_name(row.canonical)
        if not alias or not canonical or alias == canonical:
            continue
        display_name = row.display_name.strip() if row.display_name else None
        normalized = AliasRow(
            alias=alias,
            canonical=canonical,
            display_name=display_name or None,
            type=row.type,
        )
        key = (alias, canonical, row.type.value if row.type else "")
        deduped[key] = normalized
    return list(deduped.values())


def normalize_aliases(table: EntityAliases) -> EntityAliases:
    return EntityAliases(
        version=1,
        updated_at_iso=iso_now(),
        aliases=normalize_alias_rows(table.aliases),
    )


def resolve_entity(name: Optional[str], aliases: Optional[EntityAliases] = None) -> Optional[str]:
    """Map a free-text name to its canonical form (not the display name)."""
    if not name:
        return None
    normalized = normalize_entity_name(name)
    if not normalized:
        return None
    row = aliases.lookup(normalized) if aliases else None
    return row.canonical if row else normalized


def canonicalize_entities(
    entities: Optional[Sequence[Entity]], aliases: Optional[EntityAliases]
) -> List[Entity]:
    """Resolve each entity through the alias table and dedupe.

    Known aliases render as ``display_name`` (or ``canonical``) with the
    row's type taking precedence. Entries are deduplicated by
    ``(canonical, type)`` keeping the first occurrence.
    """
    if not entities:
        return []
    by_alias = {row.alias: row for row in (aliases.aliases if aliases else [])}

    seen: Dict[Tuple[str, str], Entity] = {}
    for entity in entities:
        normalized = normalize_entity_name(entity.name)
        if not normalized:
            continue
        row = by_alias.get(normalized)
        canonical = row.canonical if row else normalized
        entity_type = (row.type if row and row.type else None) or entity.type
        key = (canonical, entity_type.value if entity_type else "")
        if key not in seen:
            name = row.display_name if row and row.display_name else canonical
            seen[key] = Entity(name=name, type=entity_type)
    return list(seen.values())


class AliasService:
    """Reads and writes the per-space alias table."""

    def __init__(self, store: ResilientStore, filename: str = ALIASES_FILENAME):
        self.store = store
        self.filename = filename

    async def find(self, space_id: str) -> Optional[str]:
        return await self.store.find_by_name(space_id, self.filename)

    async def read(self, space_id: str) -> Tuple[EntityAliases, Optional[str]]:
        """Return the alias table and its document id.

        A missing or undecodable table reads as empty; store failures
        propagate.
        """
        document_id = await self.find(space_id)
        if document_id is None:
            return EntityAliases(), None

        decoded = decode_aliases(await self.store.get_content(document_id))
        if isinstance(decoded, DecodeFailure):
            logger.warning(
                "entity_aliases_unreadable",
                document_id=document_id,
                reason=decoded.reason,
                detail=decoded.detail,
            )
            return EntityAliases(), document_id
        return normalize_aliases(decoded), document_id

    async def read_best_effort(self, space_id: str) -> Optional[EntityAliases]:
        """Alias table for canonicalization; None when it cannot be read."""
        try:
            table, _ = await self.read(space_id)
        except TimelineError as exc:
            logger.warning("entity_aliases_load_failed", error=safe_error(exc))
            return None
        return table

    async def write(
        self, space_id: str, existing_id: Optional[str], table: EntityAliases
    ) -> Tuple[EntityAliases, str]:
        normalized = normalize_aliases(table)
        document_id = await self.store.write_json(
            space_id,
            self.filename,
            normalized.to_wire(),
            existing_id=existing_id,
            label="entity aliases",
        )
        logger.info(
            "entity_aliases_saved", document_id=document_id, count=len(normalized.aliases)
        )
        return normalized, document_id

    async def add(self, space_id: str, rows: Sequence[AliasRow]) -> EntityAliases:
        table, document_id = await self.read(space_id)
        merged = EntityAliases(aliases=[*table.aliases, *rows])
        saved, _ = await self.write(space_id, document_id, merged)
        return saved

    async def remove(self, space_id: str, alias: str) -> EntityAliases:
        """Drop every row whose alias normalizes to ``alias``."""
        table, document_id = await self.read(space_id)
        target = normalize_entity_name(alias)
        kept = [row for row in table.aliases if row.alias != target]
        if document_id is not None and len(kept) == len(table.aliases):
            return table
        saved, _ = await self.write(space_id, document_id, EntityAliases(aliases=kept))
        return saved

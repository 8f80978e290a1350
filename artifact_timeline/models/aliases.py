"""
Entity alias table document.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import Field

from .enums import EntityType
from .primitives import WireModel, iso_now


class AliasRow(WireModel):
    """Maps one normalized alias onto a canonical entity name."""

    alias: str = Field(..., description="Normalized alias name")
    canonical: str = Field(..., description="Normalized canonical name")
    display_name: Optional[str] = Field(None, description="Preferred rendering")
    type: Optional[EntityType] = None


class EntityAliases(WireModel):
    """The per-space alias table."""

    version: int = 1
    updated_at_iso: str = Field(default_factory=iso_now)
    aliases: List[AliasRow] = Field(default_factory=list)

    def lookup(self, normalized_name: str) -> Optional[AliasRow]:
        for row in self.aliases:
            if row.alias == normalized_name:
                return row
        return None

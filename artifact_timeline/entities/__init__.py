"""
Entity canonicalization: name normalization and the alias table.
"""

from .aliases import (
    AliasService,
    canonicalize_entities,
    normalize_alias_rows,
    normalize_aliases,
    resolve_entity,
)
from .normalize import CORPORATE_SUFFIXES, normalize_entity_name

__all__ = [
    "AliasService",
    "CORPORATE_SUFFIXES",
    "canonicalize_entities",
    "normalize_alias_rows",
    "normalize_aliases",
    "normalize_entity_name",
    "resolve_entity",
]

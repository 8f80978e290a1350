"""
Entity name normalization.
"""

import re

CORPORATE_SUFFIXES = (
    "ltd",
    "limited",
    "inc",
    "llc",
    "plc",
    "corp",
    "corporation",
    "co",
    "company",
    "gmbh",
    "s.a.",
    "srl",
)

_TRAILING_PUNCTUATION = re.compile(r"[\s.,;:!?)]+$")
_WHITESPACE = re.compile(r"\s+")

# Trailing punctuation is stripped before suffixes are tested, so a dotted
# suffix must also match without its final dot ("acme s.a." -> "acme s.a").
_SUFFIX_PATTERNS = tuple(
    re.compile(r"(?:,\s*|\s+)" + re.escape(suffix.rstrip(".")) + r"\.?$", re.IGNORECASE)
    for suffix in CORPORATE_SUFFIXES
)


def _strip_trailing_punctuation(value: str) -> str:
    return _TRAILING_PUNCTUATION.sub("", value).strip()


def normalize_entity_name(name: str) -> str:
    """Lowercase, collapse whitespace and strip corporate suffixes.

    Suffixes are stripped repeatedly, so "Acme Corp Ltd." becomes "acme".
    The result is a fixed point: normalizing it again changes nothing.
    """
    current = _strip_trailing_punctuation(_WHITESPACE.sub(" ", name.strip().lower()))

    changed = True
    while changed and current:
        changed = False
        for pattern in _SUFFIX_PATTERNS:
            if pattern.search(current):
                current = _strip_trailing_punctuation(pattern.sub("", current))
                changed = True
    return current

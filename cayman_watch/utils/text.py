"""Text normalization helpers shared by dedup, extraction and matching."""

import re
from enum import Enum
from typing import Any

_WHITESPACE_RE = re.compile(r"\s+")
_NON_WORD_RE = re.compile(r"[^\w\s]")
_LIQUIDATION_SUFFIX_RE = re.compile(r"\(\s*in\s+(?:voluntary\s+|official\s+)?liquidation\s*\)", re.IGNORECASE)


def collapse_whitespace(value: str) -> str:
    return _WHITESPACE_RE.sub(" ", value).strip()


def normalize_title(title: str) -> str:
    """Lowercase, drop punctuation and collapse whitespace.

    Args:
        title: Free-text title

    Returns:
        Normalized title used for near-duplicate comparison
    """
    if not title:
        return ""
    lowered = title.lower()
    stripped = _NON_WORD_RE.sub("", lowered)
    return collapse_whitespace(stripped)


def normalize_key_value(value: Any) -> str:
    """Canonical form of one natural-key field."""
    if value is None:
        return ""
    if isinstance(value, Enum):
        value = value.value
    return collapse_whitespace(str(value)).lower()


def normalize_entity_name(name: str) -> str:
    """Normalize a company or partnership name for cross-referencing.

    Removes "(In Voluntary Liquidation)" style qualifiers before applying
    title normalization.
    """
    if not name:
        return ""
    return normalize_title(_LIQUIDATION_SUFFIX_RE.sub(" ", name))

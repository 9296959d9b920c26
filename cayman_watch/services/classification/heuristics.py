"""Cheap keyword heuristics used before (and instead of) the classification oracle."""

import hashlib
import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Optional, Sequence

from cayman_watch.models.classification import Signal
from cayman_watch.services.classification.constants import (
    CAYMAN_KEYWORDS,
    HEURISTIC_CONFIDENCE_CAP,
    MAX_BASIC_ENTITIES,
    RO_PROVIDERS,
    SIGNAL_KEYWORDS,
)
from cayman_watch.utils.logging import get_logger

LOGGER = get_logger(__name__)

MATCHED_HEURISTICS = "matched_heuristics"
EXPLORATION_SAMPLE = "exploration_sample"
NO_MATCH = "no_match"

COMPANY_NAME_RE = re.compile(
    r"\b[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*\s+(?:Ltd|Limited|Inc|Incorporated|Corp|Corporation|Fund|Trust)\b"
)


@dataclass
class HeuristicMatch:
    """Vocabulary terms found in a piece of text."""

    matched_keywords: List[str] = field(default_factory=list)
    matched_providers: List[str] = field(default_factory=list)

    @property
    def is_candidate(self) -> bool:
        return bool(self.matched_keywords or self.matched_providers)

    @property
    def matched_terms(self) -> List[str]:
        return self.matched_keywords + self.matched_providers

    @property
    def confidence(self) -> float:
        """Relevance confidence from match counts, capped below certainty."""
        confidence = 0.0
        if self.matched_keywords:
            confidence += 0.5
        if self.matched_providers:
            confidence += 0.3
        if len(self.matched_keywords) > 1:
            confidence += 0.1
        if len(self.matched_providers) > 1:
            confidence += 0.1
        return round(min(confidence, HEURISTIC_CONFIDENCE_CAP), 4)


@dataclass(frozen=True)
class PrefilterDecision:
    process: bool
    reason: str
    matched_terms: List[str] = field(default_factory=list)


@lru_cache(maxsize=256)
def _term_regex(term: str) -> re.Pattern:
    return re.compile(rf"(?<!\w){re.escape(term)}(?!\w)", re.IGNORECASE)


def _find_terms(text: str, terms: Sequence[str]) -> List[str]:
    return [term for term in terms if _term_regex(term).search(text)]


def check_cayman_heuristics(
    text: str,
    keywords: Sequence[str] = CAYMAN_KEYWORDS,
    providers: Sequence[str] = RO_PROVIDERS,
) -> HeuristicMatch:
    """Find Cayman keywords and registered office providers in ``text``."""
    if not text:
        return HeuristicMatch()
    return HeuristicMatch(
        matched_keywords=_find_terms(text, keywords),
        matched_providers=_find_terms(text, providers),
    )


def exploration_bucket(text: str) -> int:
    """Stable bucket in [0, 100) for a piece of text.

    Uses a content hash so the same input lands in the same bucket on every
    run and every machine.
    """
    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()
    return int(digest[:8], 16) % 100


def should_process(
    title: Optional[str],
    excerpt: Optional[str],
    exploration_rate: float = 0.10,
) -> PrefilterDecision:
    """Decide whether an item is worth a classification oracle call.

    Items matching either vocabulary are always processed. Of the rest, a
    deterministic ``exploration_rate`` share is admitted by hash bucket.

    Args:
        title: Item title
        excerpt: Item excerpt or snippet
        exploration_rate: Share of non-matching items to admit, in [0, 1]

    Returns:
        PrefilterDecision: Whether to process, and why
    """
    combined = f"{title or ''} {excerpt or ''}"
    match = check_cayman_heuristics(combined)

    if match.is_candidate:
        return PrefilterDecision(
            process=True, reason=MATCHED_HEURISTICS, matched_terms=match.matched_terms
        )

    explore = exploration_bucket(combined) < exploration_rate * 100
    return PrefilterDecision(process=explore, reason=EXPLORATION_SAMPLE if explore else NO_MATCH)


def detect_signals(text: str) -> List[Signal]:
    """Risk signals whose keywords appear in ``text``, each reported once."""
    if not text:
        return []
    return [
        signal
        for signal, keywords in SIGNAL_KEYWORDS.items()
        if _find_terms(text, keywords)
    ]


def extract_basic_entities(text: str, providers: Sequence[str] = RO_PROVIDERS) -> List[str]:
    """Provider names and company-looking names, at most ``MAX_BASIC_ENTITIES``."""
    if not text:
        return []

    entities = list(_find_terms(text, providers))
    for match in COMPANY_NAME_RE.finditer(text):
        name = match.group(0)
        if name not in entities:
            entities.append(name)

    return entities[:MAX_BASIC_ENTITIES]

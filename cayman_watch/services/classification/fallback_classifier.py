"""Keyword-only classification used when the oracle is unavailable."""

from typing import Iterable, List, Sequence

from cayman_watch.models.classification import ClassificationItem, ClassificationResult, Signal
from cayman_watch.models.extraction import ExtractionMethod
from cayman_watch.services.classification.constants import DEGRADED_CONFIDENCE_CAP, HIGH_RISK_SIGNALS
from cayman_watch.services.classification.heuristics import (
    check_cayman_heuristics,
    detect_signals,
    extract_basic_entities,
)
from cayman_watch.utils.logging import get_logger

LOGGER = get_logger(__name__)


def needs_review(confidence: float, signals: Iterable[Signal], confidence_threshold: float) -> bool:
    """Low confidence or any high-risk signal routes a classification to review."""
    if confidence < confidence_threshold:
        return True
    return any(signal in HIGH_RISK_SIGNALS for signal in signals)


class HeuristicClassifier:
    """Classify items from keyword matches alone.

    Every result is marked degraded and its confidence is capped below the
    oracle's range.
    """

    def __init__(self, review_confidence_threshold: float = 0.70):
        self.review_confidence_threshold = review_confidence_threshold

    def classify(self, items: Sequence[ClassificationItem], reason: str = "") -> List[ClassificationResult]:
        LOGGER.warning(
            f"Using heuristic fallback for {len(items)} items",
            extra={"reason": reason},
        )
        return [self.classify_item(item, reason) for item in items]

    def classify_item(self, item: ClassificationItem, reason: str = "") -> ClassificationResult:
        text = f"{item.title} {item.excerpt}".strip()
        match = check_cayman_heuristics(text)
        signals = detect_signals(text)
        confidence = min(match.confidence, DEGRADED_CONFIDENCE_CAP)

        reasoning = "Heuristic fallback"
        if match.matched_terms:
            reasoning += f"; matched: {', '.join(match.matched_terms)}"
        if reason:
            reasoning += f"; oracle unavailable: {reason}"

        return ClassificationResult(
            item_id=item.item_id,
            is_cayman_related=match.is_candidate,
            confidence=confidence,
            signals=signals,
            entities=extract_basic_entities(text),
            reasoning=reasoning,
            method=ExtractionMethod.HEURISTIC,
            degraded=True,
            requires_review=needs_review(confidence, signals, self.review_confidence_threshold),
        )

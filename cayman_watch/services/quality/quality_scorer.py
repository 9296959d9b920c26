"""Completeness scoring and review routing for extracted records."""

from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from cayman_watch.core.pipeline_config import PipelineConfig, RequiredField
from cayman_watch.models.extraction import ConfidenceTier
from cayman_watch.models.records import RecordBase, RecordKind
from cayman_watch.models.review import QualityAssessment, ReviewPriority
from cayman_watch.services.classification.constants import HIGH_RISK_SIGNALS
from cayman_watch.services.extraction.patterns import CASE_FILING_COMPOSITE_FIELDS
from cayman_watch.utils.logging import get_logger

LOGGER = get_logger(__name__)

COMPOSITE_FIELDS: Dict[RecordKind, Mapping[str, Tuple[str, ...]]] = {
    RecordKind.CASE_FILING: CASE_FILING_COMPOSITE_FIELDS,
}


class QualityScorer:
    """Score records against their required fields and decide on review.

    A record starts at 100 and loses each required field's weight when that
    field's best evidence is below high confidence or absent. A required
    field that names a composite (e.g. ``parties``) takes the best tier among
    its component fields.
    """

    def __init__(self, threshold: float = 90.0, priority_threshold: float = 85.0):
        self.threshold = threshold
        self.priority_threshold = priority_threshold

    def field_tier(self, record: RecordBase, field_name: str) -> Optional[ConfidenceTier]:
        components = COMPOSITE_FIELDS.get(record.kind, {}).get(field_name, (field_name,))
        tiers = [
            record.field_confidence[name]
            for name in (field_name,) + tuple(components)
            if name in record.field_confidence
        ]
        if not tiers:
            return None
        return max(tiers, key=lambda tier: tier.rank)

    def weak_fields(self, record: RecordBase, required_fields: Sequence[RequiredField]) -> List[str]:
        """Required fields that are absent or below high confidence."""
        return [
            required.name
            for required in required_fields
            if self.field_tier(record, required.name) != ConfidenceTier.HIGH
        ]

    def score(
        self, record: RecordBase, required_fields: Sequence[RequiredField]
    ) -> Tuple[float, bool]:
        """Score a record.

        Args:
            record: Record with per-field confidence tiers
            required_fields: Required fields and their penalty weights

        Returns:
            (score in [0, 100], requires_review)
        """
        weak = set(self.weak_fields(record, required_fields))
        penalty = sum(required.weight for required in required_fields if required.name in weak)
        score = max(0.0, min(100.0, 100.0 - penalty))
        return score, self.requires_review(record, score)

    def requires_review(self, record: RecordBase, score: float) -> bool:
        if score < self.threshold:
            return True
        if self.high_risk_signals(record):
            return True
        return bool(record.review_notes)

    @staticmethod
    def high_risk_signals(record: RecordBase) -> List[str]:
        return [signal.value for signal in record.signals if signal in HIGH_RISK_SIGNALS]

    def assess(
        self, record: RecordBase, required_fields: Sequence[RequiredField]
    ) -> QualityAssessment:
        """Score a record and, when it needs review, explain why.

        Returns:
            QualityAssessment: Score, review flag, and priority/reason when flagged
        """
        score, requires_review = self.score(record, required_fields)
        if not requires_review:
            return QualityAssessment(score=score, requires_review=False)

        reasons = []
        if score < self.threshold:
            weak = ", ".join(self.weak_fields(record, required_fields))
            reasons.append(f"Quality score {score:g} below {self.threshold:g} (weak fields: {weak})")
        risky = self.high_risk_signals(record)
        if risky:
            reasons.append(f"High-risk signals: {', '.join(risky)}")
        reasons.extend(record.review_notes)

        priority = ReviewPriority.HIGH if score < self.priority_threshold else ReviewPriority.MEDIUM
        return QualityAssessment(
            score=score,
            requires_review=True,
            priority=priority,
            reason="; ".join(reasons),
        )


def scorer_for(config: PipelineConfig, kind: RecordKind) -> QualityScorer:
    return QualityScorer(
        threshold=config.threshold_for(kind),
        priority_threshold=config.priority_threshold_for(kind),
    )

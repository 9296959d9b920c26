"""Unit tests for QualityScorer."""

import pytest

from cayman_watch.core.pipeline_config import DEFAULT_REQUIRED_FIELDS, PipelineConfig, RequiredField
from cayman_watch.models.classification import Signal
from cayman_watch.models.extraction import ConfidenceTier
from cayman_watch.models.records import CaseFiling, GazetteNotice, RecordKind
from cayman_watch.models.review import ReviewPriority
from cayman_watch.services.quality.quality_scorer import QualityScorer, scorer_for

GAZETTE_FIELDS = DEFAULT_REQUIRED_FIELDS[RecordKind.GAZETTE_NOTICE]
CASE_FIELDS = DEFAULT_REQUIRED_FIELDS[RecordKind.CASE_FILING]

ALL_HIGH = {
    "entity_name": ConfidenceTier.HIGH,
    "liquidators": ConfidenceTier.HIGH,
    "liquidation_date": ConfidenceTier.HIGH,
    "liquidation_type": ConfidenceTier.HIGH,
    "registration_no": ConfidenceTier.HIGH,
}


def _notice(field_confidence=None, **overrides) -> GazetteNotice:
    values = {
        "entity_name": "ALPHA HOLDINGS LTD",
        "field_confidence": dict(ALL_HIGH if field_confidence is None else field_confidence),
    }
    values.update(overrides)
    return GazetteNotice(**values)


class TestScore:
    """Tests for the weighted completeness score."""

    @pytest.fixture
    def scorer(self):
        return QualityScorer(threshold=90.0, priority_threshold=85.0)

    def test_complete_record_scores_full(self, scorer):
        score, requires_review = scorer.score(_notice(), GAZETTE_FIELDS)

        assert score == 100.0
        assert requires_review is False

    def test_missing_fields_lose_their_weight(self, scorer):
        confidence = dict(ALL_HIGH)
        del confidence["liquidators"]
        del confidence["registration_no"]

        score, requires_review = scorer.score(_notice(confidence), GAZETTE_FIELDS)

        assert score == 88.0
        assert requires_review is True

    def test_medium_and_low_count_as_weak(self, scorer):
        confidence = dict(ALL_HIGH, liquidation_date=ConfidenceTier.MEDIUM, registration_no=ConfidenceTier.LOW)

        score, _ = scorer.score(_notice(confidence), GAZETTE_FIELDS)

        assert score == 93.0

    def test_score_never_negative(self, scorer):
        heavy = (RequiredField(name="entity_name", weight=80), RequiredField(name="liquidators", weight=80))

        score, _ = scorer.score(_notice({}), heavy)

        assert score == 0.0

    def test_threshold_is_inclusive(self):
        confidence = dict(ALL_HIGH)
        del confidence["liquidation_date"]
        notice = _notice(confidence)

        assert QualityScorer(threshold=95.0).score(notice, GAZETTE_FIELDS) == (95.0, False)
        assert QualityScorer(threshold=96.0).score(notice, GAZETTE_FIELDS) == (95.0, True)

    def test_weak_fields_listed_in_required_order(self, scorer):
        notice = _notice({"entity_name": ConfidenceTier.HIGH})

        assert scorer.weak_fields(notice, GAZETTE_FIELDS) == [
            "liquidators",
            "liquidation_date",
            "liquidation_type",
            "registration_no",
        ]


class TestReviewRouting:
    """Tests for review flags, priority and reason."""

    @pytest.fixture
    def scorer(self):
        return QualityScorer(threshold=90.0, priority_threshold=85.0)

    def test_clean_record_not_flagged(self, scorer):
        assessment = scorer.assess(_notice(), GAZETTE_FIELDS)

        assert assessment.requires_review is False
        assert assessment.priority is None
        assert assessment.reason is None

    def test_high_risk_signal_forces_review(self, scorer):
        assessment = scorer.assess(_notice(signals=[Signal.FRAUD]), GAZETTE_FIELDS)

        assert assessment.score == 100.0
        assert assessment.requires_review is True
        assert assessment.priority == ReviewPriority.MEDIUM
        assert "High-risk signals: fraud" in assessment.reason

    def test_low_risk_signal_does_not_force_review(self, scorer):
        assessment = scorer.assess(_notice(signals=[Signal.FINANCIAL_DECLINE]), GAZETTE_FIELDS)

        assert assessment.requires_review is False

    def test_review_notes_force_review(self, scorer):
        notice = _notice(review_notes=["Possible missed notice near ZETA FUND LTD"])

        assessment = scorer.assess(notice, GAZETTE_FIELDS)

        assert assessment.requires_review is True
        assert "Possible missed notice near ZETA FUND LTD" in assessment.reason

    def test_priority_high_below_priority_threshold(self, scorer):
        confidence = dict(ALL_HIGH)
        del confidence["entity_name"]
        del confidence["registration_no"]

        assessment = scorer.assess(_notice(confidence), GAZETTE_FIELDS)

        assert assessment.score == 88.0
        assert assessment.priority == ReviewPriority.MEDIUM

        del confidence["liquidation_type"]
        assessment = scorer.assess(_notice(confidence), GAZETTE_FIELDS)

        assert assessment.score == 85.0
        assert assessment.priority == ReviewPriority.MEDIUM

        del confidence["liquidation_date"]
        assessment = scorer.assess(_notice(confidence), GAZETTE_FIELDS)

        assert assessment.score == 80.0
        assert assessment.priority == ReviewPriority.HIGH

    def test_reason_names_weak_fields(self, scorer):
        confidence = dict(ALL_HIGH)
        del confidence["liquidators"]

        assessment = scorer.assess(_notice(confidence), GAZETTE_FIELDS)

        assert assessment.score == 90.0
        assert assessment.requires_review is False
        assert assessment.reason is None

        del confidence["registration_no"]
        assessment = scorer.assess(_notice(confidence), GAZETTE_FIELDS)

        assert "below 90" in assessment.reason
        assert "liquidators, registration_no" in assessment.reason


class TestCompositeFields:
    """Tests for required fields built from several extracted fields."""

    def test_parties_satisfied_by_either_side(self):
        filing = CaseFiling(
            cause_number="FSD 45 of 2023",
            field_confidence={"petitioner": ConfidenceTier.HIGH, "respondent": ConfidenceTier.LOW},
        )

        assert QualityScorer().field_tier(filing, "parties") == ConfidenceTier.HIGH

    def test_composite_without_components_is_absent(self):
        filing = CaseFiling(cause_number="FSD 45 of 2023")

        assert QualityScorer().field_tier(filing, "timeline") is None

    def test_case_filing_score(self):
        filing = CaseFiling(
            cause_number="FSD 45 of 2023",
            field_confidence={
                "petitioner": ConfidenceTier.HIGH,
                "liquidators": ConfidenceTier.HIGH,
                "filing_date": ConfidenceTier.MEDIUM,
            },
        )

        score, _ = QualityScorer(threshold=60.0).score(filing, CASE_FIELDS)

        # registered office, key individuals, timeline, financial summary, law firm
        assert score == 70.0


class TestScorerFor:

    def test_kind_overrides(self):
        scorer = scorer_for(PipelineConfig(), RecordKind.CASE_FILING)

        assert scorer.threshold == 60.0
        assert scorer.priority_threshold == 40.0

    def test_default_thresholds(self):
        scorer = scorer_for(PipelineConfig(), RecordKind.GAZETTE_NOTICE)

        assert scorer.threshold == 90.0
        assert scorer.priority_threshold == 85.0

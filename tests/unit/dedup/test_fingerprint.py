"""Unit tests for record fingerprints and near-duplicate titles."""

import pytest

from cayman_watch.models.records import Article, GazetteNotice, LiquidationType
from cayman_watch.services.dedup.fingerprint import (
    NEAR_DUPLICATE_THRESHOLD,
    fingerprint,
    fingerprint_input,
    is_near_duplicate,
    title_similarity,
)


def _notice(**overrides) -> GazetteNotice:
    values = {
        "entity_name": "Alpha Holdings Ltd",
        "liquidation_date": "2024-03-05",
        "liquidation_type": LiquidationType.VOLUNTARY,
    }
    values.update(overrides)
    return GazetteNotice(**values)


class TestFingerprint:
    """Tests for natural-key fingerprints."""

    def test_input_format(self):
        assert fingerprint_input(_notice()) == "gazette_notice:alpha holdings ltd|2024-03-05|voluntary"

    def test_missing_key_values_are_empty(self):
        notice = GazetteNotice(entity_name="Alpha Holdings Ltd")

        assert fingerprint_input(notice) == "gazette_notice:alpha holdings ltd||unknown"

    def test_case_and_whitespace_do_not_change_fingerprint(self):
        assert fingerprint(_notice()) == fingerprint(_notice(entity_name="  ALPHA   HOLDINGS LTD "))

    def test_non_key_fields_do_not_change_fingerprint(self):
        assert fingerprint(_notice()) == fingerprint(
            _notice(liquidators=["John Smith"], registration_no="123456", notes="Final meeting held")
        )

    def test_key_fields_change_fingerprint(self):
        base = fingerprint(_notice())

        assert fingerprint(_notice(liquidation_date="2024-03-06")) != base
        assert fingerprint(_notice(liquidation_type=LiquidationType.COURT_ORDERED)) != base

    def test_fingerprint_is_sha256_hex(self):
        value = fingerprint(_notice())

        assert len(value) == 64
        assert int(value, 16) >= 0

    def test_article_key(self):
        article = Article(url="https://example.com/news/1", title="Fund Collapse")

        assert fingerprint_input(article) == "article:https://example.com/news/1|fund collapse"


class TestNearDuplicateTitles:
    """Tests for the normalized Levenshtein similarity threshold."""

    # 20 characters once normalized
    TITLE = "Cayman fund collapse"

    def test_three_edits_in_twenty_is_near_duplicate(self):
        other = "Cayman bund kollapze"

        assert title_similarity(self.TITLE, other) == pytest.approx(0.85)
        assert is_near_duplicate(self.TITLE, other) is True

    def test_four_edits_in_twenty_is_not(self):
        other = "Cayman bund kollapzo"

        assert title_similarity(self.TITLE, other) == pytest.approx(0.80)
        assert is_near_duplicate(self.TITLE, other) is False

    def test_punctuation_and_case_ignored(self):
        assert is_near_duplicate("CAYMAN FUND COLLAPSE!", "cayman fund collapse") is True

    def test_empty_title_never_matches(self):
        assert is_near_duplicate("", "") is False
        assert is_near_duplicate("Cayman fund collapse", "!!!") is False

    def test_default_threshold(self):
        assert NEAR_DUPLICATE_THRESHOLD == 0.85
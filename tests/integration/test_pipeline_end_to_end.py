"""End-to-end pipeline runs against an in-memory database.

The oracle is mocked; segmentation, extraction, dedup, scoring and storage
run for real.
"""

import json

import pytest
from sqlalchemy import select

from cayman_watch.core.oracle_client import OracleResponse
from cayman_watch.core.pipeline_config import PipelineConfig
from cayman_watch.database.models import ExtractedRecord, IngestionRun, ReviewQueueItem
from cayman_watch.models.documents import Document, DocumentKind
from cayman_watch.models.records import LiquidationType
from cayman_watch.models.runs import RunStatus
from cayman_watch.pipeline.pipeline_service import (
    article_from_document,
    extract_gazette,
    run_article_batch,
    run_pipeline,
    run_pipelines,
)

COMPACT_GAZETTE_TEXT = """CONTENTS
Liquidation Notices....Pg.2
Final Meeting Notices....Pg.3
COMMERCIAL
Liquidation Notices
ALPHA HOLDINGS LTD (In Voluntary Liquidation)
Registration No: 123456
Date of Liquidation: 5 March 2024
Voluntary Liquidator: John Smith
Contact: john.smith@example.com

Final Meeting Notices
ALPHA HOLDINGS LTD
Final Meeting Date: 30 April 2024
GOVERNMENT
Appointments
"""

FILING_TEXT = """Petitioner: Beta Bank Limited of George Town
Respondent: Alpha Holdings Limited
Official Liquidator: John Smith
The petition was filed on 5 March 2024.
Hearing date: 12 April 2024
Attorneys: Maples and Calder (Cayman) LLP
"""


async def _records(session, kind):
    result = await session.execute(select(ExtractedRecord).where(ExtractedRecord.kind == kind))
    return list(result.scalars().all())


def _article(title, text, url):
    return Document(kind=DocumentKind.ARTICLE, title=title, text=text, source_url=url)


def _classification(document, confidence=0.9, signals=None):
    return {
        "id": str(document.id),
        "cayman_relevant": True,
        "cayman_confidence": confidence,
        "cayman_reasoning": "Cayman-domiciled fund",
        "cayman_entities": [{"name": "Alpha Fund SPC", "type": "fund"}],
        "signals_detected": signals or [],
    }


class TestGazettePipeline:
    """Tests for gazette documents on the pattern path."""

    @pytest.mark.asyncio
    async def test_gazette_notice_stored(self, gazette_document, pipeline_config, storage, session):
        summary = await run_pipeline(gazette_document, pipeline_config, storage)

        assert summary.status == RunStatus.COMPLETED
        assert (summary.fetched, summary.new, summary.duplicate, summary.failed) == (1, 1, 0, 0)
        assert summary.review_queued == 0

        records = await _records(session, "gazette_notice")
        assert len(records) == 1
        row = records[0]
        assert row.payload["entity_name"] == "ALPHA HOLDINGS LTD"
        assert row.payload["registration_no"] == "123456"
        assert row.payload["liquidation_type"] == "Voluntary"
        assert row.payload["liquidation_date"] == "2024-03-05"
        assert row.payload["final_meeting_date"] == "2024-04-30"
        assert row.payload["liquidators"] == ["John Smith"]
        assert row.quality_score == 100.0
        assert row.requires_review is False
        assert row.run_id == summary.run_id
        assert row.document_id == gazette_document.id

    @pytest.mark.asyncio
    async def test_second_run_creates_nothing(self, gazette_document, pipeline_config, storage, session):
        await run_pipeline(gazette_document, pipeline_config, storage)

        summary = await run_pipeline(gazette_document, pipeline_config, storage)

        assert summary.status == RunStatus.COMPLETED
        assert summary.new == 0
        assert summary.duplicate == 1
        assert len(await _records(session, "gazette_notice")) == 1

    @pytest.mark.asyncio
    async def test_missing_target_vocabulary_fails_run(self, gazette_document, storage, session):
        config = PipelineConfig(target_sections=(), backoff_base_ms=0, inter_batch_delay_ms=0)

        summary = await run_pipeline(gazette_document, config, storage)

        assert summary.status == RunStatus.FAILED
        assert summary.errors[0].startswith("ConfigurationError")
        run = await session.get(IngestionRun, summary.run_id)
        assert run.status == "failed"

    @pytest.mark.asyncio
    async def test_contents_listing_outside_region_is_ignored(self, gazette_document, pipeline_config):
        result = await extract_gazette(gazette_document, pipeline_config)

        assert [notice.entity_name for notice in result.notices] == ["ALPHA HOLDINGS LTD"]
        assert result.possible_misses == []

    @pytest.mark.asyncio
    async def test_compact_gazette_keeps_real_headings(self, pipeline_config, storage, session):
        """Test that a contents list just above the body does not hide its headings."""
        document = Document(kind=DocumentKind.GAZETTE, text=COMPACT_GAZETTE_TEXT)

        result = await extract_gazette(document, pipeline_config)

        assert len(result.notices) == 1
        notice = result.notices[0]
        assert notice.entity_name == "ALPHA HOLDINGS LTD"
        assert notice.liquidation_type == LiquidationType.VOLUNTARY
        assert notice.final_meeting_date == "2024-04-30"

        summary = await run_pipeline(document, pipeline_config, storage)

        assert summary.new == 1
        row = (await _records(session, "gazette_notice"))[0]
        assert row.requires_review is False


class TestGazetteOraclePath:

    @pytest.mark.asyncio
    async def test_oracle_notices_stored(
        self, gazette_document, pipeline_config, storage, session, mock_oracle, no_sleep
    ):
        payload = {
            "results": [
                {
                    "item_id": "section-0",
                    "notices": [
                        {
                            "entity_name": "ALPHA HOLDINGS LTD",
                            "registration_no": "123456",
                            "liquidation_type": "Voluntary",
                            "liquidators": ["John Smith"],
                            "liquidation_date": "2024-03-05",
                        }
                    ],
                },
                {"item_id": "section-1", "notices": []},
            ]
        }
        mock_oracle.invoke.return_value = OracleResponse(
            text=json.dumps(payload), input_tokens=1200, output_tokens=300
        )

        summary = await run_pipeline(gazette_document, pipeline_config, storage, mock_oracle, sleep=no_sleep)

        assert summary.status == RunStatus.COMPLETED
        assert summary.new == 1
        mock_oracle.invoke.assert_awaited_once()
        row = (await _records(session, "gazette_notice"))[0]
        assert row.extraction_method == "oracle"
        assert row.payload["entity_name"] == "ALPHA HOLDINGS LTD"


class TestCaseFilingPipeline:

    @pytest.mark.asyncio
    async def test_filing_stored(self, pipeline_config, storage, session):
        document = Document(
            kind=DocumentKind.CASE_FILING,
            text=FILING_TEXT,
            title="In the matter of Alpha Holdings Limited",
            metadata={"cause_number": "FSD 123 of 2024 (IKJ)", "subject": "Winding up petition"},
        )

        summary = await run_pipeline(document, pipeline_config, storage)

        assert summary.status == RunStatus.COMPLETED
        assert (summary.fetched, summary.new, summary.failed) == (1, 1, 0)
        row = (await _records(session, "case_filing"))[0]
        assert row.payload["cause_number"] == "FSD 123 of 2024 (IKJ)"
        assert row.title == "In the matter of Alpha Holdings Limited"

    @pytest.mark.asyncio
    async def test_filings_sharing_a_title_are_both_stored(self, pipeline_config, storage, session):
        title = "In the Matter of Alpha Master Fund Ltd"
        first = Document(
            kind=DocumentKind.CASE_FILING,
            text=FILING_TEXT,
            title=title,
            metadata={"cause_number": "FSD 100 of 2024", "subject": "Winding up petition"},
        )
        second = Document(
            kind=DocumentKind.CASE_FILING,
            text=FILING_TEXT.replace("5 March 2024", "9 May 2024"),
            title=title,
            metadata={"cause_number": "FSD 250 of 2024", "subject": "Summons for directions"},
        )

        await run_pipeline(first, pipeline_config, storage)
        summary = await run_pipeline(second, pipeline_config, storage)

        assert (summary.new, summary.duplicate) == (1, 0)
        rows = await _records(session, "case_filing")
        assert sorted(row.payload["cause_number"] for row in rows) == ["FSD 100 of 2024", "FSD 250 of 2024"]

    @pytest.mark.asyncio
    async def test_filing_without_cause_number_counted_as_failed(self, pipeline_config, storage, session):
        document = Document(kind=DocumentKind.CASE_FILING, text="Petitioner: Beta Bank Limited")

        summary = await run_pipeline(document, pipeline_config, storage)

        assert summary.status == RunStatus.COMPLETED
        assert (summary.fetched, summary.new, summary.failed) == (1, 0, 1)
        assert await _records(session, "case_filing") == []


class TestArticlePipeline:
    """Tests for prefiltered, classified article batches."""

    @pytest.fixture
    def articles(self):
        return [
            _article(
                "Cayman Islands fund suspends redemptions",
                "Investors in the fund were told on Monday.",
                "https://example.com/news/1",
            ),
            _article(
                "Grand Cayman hedge fund accused of fraud",
                "Regulators allege a Ponzi scheme.",
                "https://example.com/news/2",
            ),
            _article("Local bakery wins award", "Best bread in town.", "https://example.com/news/3"),
        ]

    @pytest.mark.asyncio
    async def test_articles_classified_and_routed(self, articles, storage, session, mock_oracle, no_sleep):
        config = PipelineConfig(exploration_rate=0.0, backoff_base_ms=0, inter_batch_delay_ms=0)
        mock_oracle.invoke.return_value = OracleResponse(
            text=json.dumps(
                [_classification(articles[0]), _classification(articles[1], confidence=0.95, signals=["fraud"])]
            ),
            input_tokens=500,
            output_tokens=100,
        )

        summary = await run_article_batch(articles, config, storage, mock_oracle, sleep=no_sleep)

        assert summary.status == RunStatus.COMPLETED
        assert (summary.fetched, summary.new, summary.duplicate) == (3, 2, 0)
        assert summary.review_queued == 1

        request = mock_oracle.invoke.await_args.args[0]
        assert [item.item_id for item in request.items] == [str(articles[0].id), str(articles[1].id)]

        rows = {row.title: row for row in await _records(session, "article")}
        assert set(rows) == {articles[0].title, articles[1].title}
        first = rows[articles[0].title]
        assert first.status == "classified"
        assert first.requires_review is False
        assert first.oracle_input_tokens == 250
        assert first.payload["entities"] == ["Alpha Fund SPC"]

        queued = (await session.execute(select(ReviewQueueItem))).scalars().all()
        assert len(queued) == 1
        assert queued[0].record_id == rows[articles[1].title].id
        assert queued[0].priority == "medium"
        assert "fraud" in queued[0].reason

    @pytest.mark.asyncio
    async def test_without_oracle_articles_are_degraded(self, articles, storage, session):
        config = PipelineConfig(exploration_rate=0.0, backoff_base_ms=0, inter_batch_delay_ms=0)

        summary = await run_article_batch(articles[:1], config, storage)

        assert summary.new == 1
        assert summary.review_queued == 1
        assert any("degraded" in error for error in summary.errors)
        row = (await _records(session, "article"))[0]
        assert row.status == "degraded"
        assert row.extraction_method == "heuristic"
        assert row.requires_review is True

    @pytest.mark.asyncio
    async def test_repeated_article_is_duplicate(self, articles, storage):
        config = PipelineConfig(exploration_rate=0.0, backoff_base_ms=0, inter_batch_delay_ms=0)
        repeat = _article(articles[0].title, articles[0].text, articles[0].source_url)

        summary = await run_article_batch([articles[0], repeat], config, storage)

        assert (summary.fetched, summary.new, summary.duplicate) == (2, 1, 1)

    @pytest.mark.asyncio
    async def test_batches_paced_by_inter_batch_delay(self, articles, storage, no_sleep):
        config = PipelineConfig(
            exploration_rate=0.0, backoff_base_ms=0, inter_batch_delay_ms=1500, article_batch_size=1
        )

        await run_article_batch(articles, config, storage, sleep=no_sleep)

        # Two admitted articles, one per batch
        no_sleep.assert_awaited_once_with(1.5)

    @pytest.mark.asyncio
    async def test_single_article_document_runs_as_batch(self, articles, storage):
        config = PipelineConfig(exploration_rate=0.0, backoff_base_ms=0, inter_batch_delay_ms=0)

        summary = await run_pipeline(articles[0], config, storage)

        assert summary.new == 1

    def test_article_built_from_document(self):
        document = Document(kind=DocumentKind.ARTICLE, text="x" * 3000, metadata={"source": "Reuters"})

        article = article_from_document(document)

        assert article.url == f"urn:document:{document.id}"
        assert len(article.excerpt) == 2000
        assert article.source == "Reuters"


class TestRunPipelines:

    @pytest.mark.asyncio
    async def test_summaries_in_input_order(self, gazette_document, pipeline_config, storage):
        filing = Document(
            kind=DocumentKind.CASE_FILING,
            text=FILING_TEXT,
            metadata={"cause_number": "FSD 123 of 2024 (IKJ)"},
        )

        summaries = await run_pipelines([gazette_document, filing], pipeline_config, storage)

        assert [summary.status for summary in summaries] == [RunStatus.COMPLETED, RunStatus.COMPLETED]
        assert summaries[0].new == 1
        assert summaries[1].new == 1
        assert summaries[0].run_id != summaries[1].run_id

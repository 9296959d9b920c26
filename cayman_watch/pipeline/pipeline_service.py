"""Pipeline entry points.

``run_pipeline`` processes one document end to end: segmentation, batching,
extraction, dedup, scoring, persistence and review routing, all inside one
ingestion run. ``run_article_batch`` does the same for a batch of news items
through the prefilter and classification cascade. ``run_pipelines`` fans out
independent documents concurrently.

Stages within one run are strictly sequential. Configuration problems and an
unreachable storage layer fail the run; everything else degrades or is
counted.
"""

import asyncio
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple
from uuid import UUID

from cayman_watch.core.exceptions import AppError, ValidationError
from cayman_watch.core.oracle_client import BaseOracleClient
from cayman_watch.core.pipeline_config import PipelineConfig
from cayman_watch.models.classification import ClassificationItem, ClassificationResult
from cayman_watch.models.documents import Document, DocumentKind
from cayman_watch.models.extraction import ConfidenceTier
from cayman_watch.models.records import Article, RecordBase, RecordStatus
from cayman_watch.models.runs import IngestionRunSummary, RunStatus
from cayman_watch.pipeline.run_ledger import IngestionRunLedger
from cayman_watch.repositories.pipeline_storage import PipelineStorage
from cayman_watch.services.chunking.section_segmenter import SectionSegmenter
from cayman_watch.services.classification.classification_cascade import ClassificationCascade
from cayman_watch.services.classification.heuristics import should_process
from cayman_watch.services.dedup.dedup_store import DedupStore
from cayman_watch.services.extraction.case_filing_extractor import CaseFilingExtractor
from cayman_watch.services.extraction.notice_parser import GazetteParseResult, NoticeParser
from cayman_watch.services.extraction.oracle_notice_extractor import OracleNoticeExtractor
from cayman_watch.services.quality.quality_scorer import scorer_for
from cayman_watch.utils.logging import get_logger

LOGGER = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]

FALLBACK_SECTION_NAME = "Region of interest"
ARTICLE_EXCERPT_CHARS = 2000


async def run_pipeline(
    document: Document,
    config: PipelineConfig,
    storage: PipelineStorage,
    oracle: Optional[BaseOracleClient] = None,
    sleep: Optional[Sleep] = None,
) -> IngestionRunSummary:
    """Run the pipeline over one document.

    Idempotent with respect to records already stored: a second run over the
    same document finds every fingerprint and creates nothing.

    Args:
        document: Gazette, case filing or single article
        config: Frozen run configuration
        storage: Storage facade
        oracle: Extraction/classification oracle; pattern and heuristic paths
            are used when None
        sleep: Sleep coroutine for inter-batch delays and backoff

    Returns:
        IngestionRunSummary: Final counts of the run
    """
    if document.kind == DocumentKind.ARTICLE:
        return await run_article_batch([document], config, storage, oracle, sleep=sleep)

    ledger = IngestionRunLedger(storage, source=f"{document.kind.value}:{document.id}")
    await ledger.start()

    LOGGER.info(
        f"Running pipeline for {document.kind.value} document {document.id}",
        extra={"run_id": str(ledger.run_id), "text_length": len(document.text)},
    )

    try:
        config.validate_required()
        await storage.save_document(document)
        dedup = DedupStore(storage)

        if document.kind == DocumentKind.GAZETTE:
            result = await extract_gazette(document, config, oracle, sleep)
            for error in result.errors:
                ledger.record_error(error)
            for notice in result.notices:
                await _ingest_record(notice, document, config, storage, dedup, ledger)
        else:
            ledger.record_fetched()
            try:
                filing = CaseFilingExtractor().extract(document)
            except ValidationError as e:
                LOGGER.warning(f"Could not extract filing {document.id}: {e}")
                ledger.record_failed(str(e))
            else:
                await _ingest_record(filing, document, config, storage, dedup, ledger, counted=True)

    except AppError as e:
        LOGGER.error(f"Pipeline run {ledger.run_id} failed: {e}", exc_info=True)
        return await ledger.finalize(RunStatus.FAILED, e)
    except Exception as e:
        LOGGER.error(f"Unexpected error in pipeline run {ledger.run_id}", exc_info=True)
        await ledger.finalize(RunStatus.FAILED, e)
        raise

    return await ledger.finalize(RunStatus.COMPLETED)


async def extract_gazette(
    document: Document,
    config: PipelineConfig,
    oracle: Optional[BaseOracleClient] = None,
    sleep: Optional[Sleep] = None,
) -> GazetteParseResult:
    """Segment a gazette and extract its notices.

    The COMMERCIAL..GOVERNMENT region bounds segmentation when present. With
    no target section found, the whole region is treated as one section.
    """
    text = document.text
    segmenter = SectionSegmenter(contents_proximity_chars=config.contents_proximity_chars)

    region = segmenter.locate_region(text, config.region_start_pattern, config.region_end_pattern)
    start, end = region or (0, len(text))

    sections = segmenter.segment(text, config.target_sections, config.stop_sections, start, end)
    section_keys = {target.name: target.key for target in config.target_sections}
    if not sections:
        LOGGER.info(
            "No target sections found, using the whole region",
            extra={"document_id": str(document.id), "region": [start, end]},
        )
        sections = [segmenter.fallback_section(text, start, end, FALLBACK_SECTION_NAME)]

    region_text = text[start:end]
    if oracle is not None:
        extractor = OracleNoticeExtractor.from_config(config, oracle, sleep=sleep)
        result = await extractor.extract(sections, section_keys, region_text)
    else:
        parser = NoticeParser(name_match_threshold=config.name_match_threshold)
        result = parser.parse_sections(sections, section_keys, region_text)

    if result.possible_misses:
        note = f"Possible missed notices in gazette: {', '.join(result.possible_misses)}"
        LOGGER.warning(note, extra={"document_id": str(document.id)})
        result.notices = [
            notice.model_copy(update={"review_notes": notice.review_notes + [note]})
            for notice in result.notices
        ]

    return result


async def run_article_batch(
    articles: Sequence[Document],
    config: PipelineConfig,
    storage: PipelineStorage,
    oracle: Optional[BaseOracleClient] = None,
    sleep: Optional[Sleep] = None,
) -> IngestionRunSummary:
    """Prefilter, classify and store a batch of news articles in one run.

    Args:
        articles: Article documents (title, text as excerpt, source_url)
        config: Frozen run configuration
        storage: Storage facade
        oracle: Classification oracle; heuristics only when None
        sleep: Sleep coroutine for inter-batch delays and backoff

    Returns:
        IngestionRunSummary: Final counts of the run
    """
    sleep = sleep or asyncio.sleep
    ledger = IngestionRunLedger(storage, source="articles")
    await ledger.start()

    try:
        config.validate_required()
        dedup = DedupStore(storage)
        cascade = ClassificationCascade.from_config(config, oracle, sleep=sleep)
        pending: List[Tuple[Document, Article, str]] = []

        for document in articles:
            ledger.record_fetched()
            article = article_from_document(document)

            decision = await dedup.check(article)
            if decision.is_duplicate:
                ledger.record_duplicate()
                continue

            prefilter = should_process(article.title, article.excerpt, config.exploration_rate)
            article = article.model_copy(update={"prefilter_reason": prefilter.reason})
            dedup.register(decision.fingerprint, article.kind.value, article.title)

            if not prefilter.process:
                if config.persist_skipped_articles:
                    await storage.save_document(document)
                    skipped = article.model_copy(update={"status": RecordStatus.SKIPPED})
                    await _store_record(
                        skipped, decision.fingerprint, document, config, storage, ledger, route_review=False
                    )
                continue

            await storage.save_document(document)
            pending.append((document, article, decision.fingerprint))

        batch_size = config.article_batch_size
        for batch_index, offset in enumerate(range(0, len(pending), batch_size)):
            if batch_index > 0 and config.inter_batch_delay_ms:
                await sleep(config.inter_batch_delay_ms / 1000.0)

            chunk = pending[offset:offset + batch_size]
            outcome = await cascade.classify_batch(
                [
                    ClassificationItem(item_id=str(document.id), title=article.title, excerpt=article.excerpt)
                    for document, article, _ in chunk
                ]
            )
            if outcome.error:
                ledger.record_error(f"Classification batch {batch_index} degraded: {outcome.error}")

            input_share = round(outcome.input_tokens / len(chunk))
            output_share = round(outcome.output_tokens / len(chunk))
            for (document, article, record_fingerprint), result in zip(chunk, outcome.results):
                classified = apply_classification(
                    article, result, input_share, output_share, config.review_confidence_threshold
                )
                await _store_record(classified, record_fingerprint, document, config, storage, ledger)

    except AppError as e:
        LOGGER.error(f"Article run {ledger.run_id} failed: {e}", exc_info=True)
        return await ledger.finalize(RunStatus.FAILED, e)
    except Exception as e:
        LOGGER.error(f"Unexpected error in article run {ledger.run_id}", exc_info=True)
        await ledger.finalize(RunStatus.FAILED, e)
        raise

    return await ledger.finalize(RunStatus.COMPLETED)


async def run_pipelines(
    documents: Sequence[Document],
    config: PipelineConfig,
    storage: PipelineStorage,
    oracle: Optional[BaseOracleClient] = None,
    sleep: Optional[Sleep] = None,
) -> List[IngestionRunSummary]:
    """Run independent documents concurrently, bounded by ``max_concurrent_documents``.

    Returns:
        One summary per document, in input order
    """
    semaphore = asyncio.Semaphore(config.max_concurrent_documents)

    async def bounded(document: Document) -> IngestionRunSummary:
        async with semaphore:
            return await run_pipeline(document, config, storage, oracle, sleep)

    return list(await asyncio.gather(*(bounded(document) for document in documents)))


def article_from_document(document: Document) -> Article:
    metadata = document.metadata or {}
    return Article(
        url=document.source_url or f"urn:document:{document.id}",
        title=document.title or "",
        excerpt=document.text[:ARTICLE_EXCERPT_CHARS],
        source=metadata.get("source"),
        published_at=document.published_at,
    )


def apply_classification(
    article: Article,
    result: ClassificationResult,
    input_tokens: int = 0,
    output_tokens: int = 0,
    confidence_threshold: float = 0.70,
) -> Article:
    """Copy a classification onto its article record with field tiers set."""
    classification_tier = (
        ConfidenceTier.HIGH
        if not result.degraded and result.confidence >= confidence_threshold
        else ConfidenceTier.LOW
    )
    field_confidence = {"classification": classification_tier}
    if article.title:
        field_confidence["title"] = ConfidenceTier.HIGH
    if result.entities:
        field_confidence["entities"] = ConfidenceTier.HIGH if not result.degraded else ConfidenceTier.MEDIUM

    review_notes = list(article.review_notes)
    if result.requires_review and result.confidence < confidence_threshold:
        review_notes.append(f"Classification confidence {result.confidence:.2f} below {confidence_threshold:.2f}")

    return article.model_copy(
        update={
            "status": RecordStatus.DEGRADED if result.degraded else RecordStatus.CLASSIFIED,
            "is_cayman_related": result.is_cayman_related,
            "confidence": result.confidence,
            "signals": list(result.signals),
            "entities": list(result.entities),
            "reasoning": result.reasoning,
            "review_notes": review_notes,
            "field_confidence": field_confidence,
            "provenance": article.provenance.model_copy(
                update={
                    "method": result.method,
                    "oracle_input_tokens": input_tokens,
                    "oracle_output_tokens": output_tokens,
                }
            ),
        }
    )


async def _ingest_record(
    record: RecordBase,
    document: Document,
    config: PipelineConfig,
    storage: PipelineStorage,
    dedup: DedupStore,
    ledger: IngestionRunLedger,
    counted: bool = False,
) -> None:
    """Dedup, score and store one extracted record."""
    if not counted:
        ledger.record_fetched()

    decision = await dedup.check(record)
    if decision.is_duplicate:
        ledger.record_duplicate()
        return

    dedup.register(decision.fingerprint, record.kind.value, record.display_title())
    await _store_record(record, decision.fingerprint, document, config, storage, ledger)


async def _store_record(
    record: RecordBase,
    record_fingerprint: str,
    document: Document,
    config: PipelineConfig,
    storage: PipelineStorage,
    ledger: IngestionRunLedger,
    route_review: bool = True,
) -> Optional[UUID]:
    assessment = scorer_for(config, record.kind).assess(record, config.required_fields_for(record.kind))
    requires_review = route_review and assessment.requires_review

    record = record.model_copy(
        update={
            "provenance": record.provenance.model_copy(
                update={"run_id": ledger.run_id, "document_id": document.id}
            )
        }
    )
    record_id = await storage.insert_record(
        record,
        record_fingerprint,
        assessment.score,
        requires_review,
        ledger.run_id,
        document.id,
    )
    if record_id is None:
        # Another run stored the same fingerprint first
        ledger.record_duplicate()
        return None

    ledger.record_new(record_id)
    if requires_review:
        await storage.enqueue_review(record_id, assessment.reason or "Review required", assessment.priority)
        ledger.record_review_queued()
    return record_id

"""Storage facade used by the pipeline.

Every operation opens its own session from the session factory, so runs over
independent documents can proceed concurrently without sharing a session.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cayman_watch.core.exceptions import DatabaseError
from cayman_watch.database.models import ReviewQueueItem
from cayman_watch.models.documents import Document
from cayman_watch.models.records import RECORD_ADAPTER, Record, RecordBase
from cayman_watch.models.review import ReviewPriority
from cayman_watch.models.runs import RunStatus
from cayman_watch.repositories.document_repository import DocumentRepository
from cayman_watch.repositories.ingestion_run_repository import IngestionRunRepository
from cayman_watch.repositories.record_repository import RecordRepository
from cayman_watch.repositories.review_queue_repository import ReviewQueueRepository
from cayman_watch.utils.logging import get_logger
from cayman_watch.utils.text import normalize_title

LOGGER = get_logger(__name__)


class PipelineStorage:
    """Durable storage for documents, records, review items and runs."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_maker() as session:
                yield session
        except (OperationalError, InterfaceError, OSError) as e:
            LOGGER.error("Storage unreachable", exc_info=True, extra={"error": str(e)})
            raise DatabaseError(f"Storage unreachable: {e}", e)

    async def save_document(self, document: Document) -> None:
        async with self._session() as session:
            await DocumentRepository(session).save_if_new(document)

    async def start_run(self, source: str) -> UUID:
        async with self._session() as session:
            run = await IngestionRunRepository(session).start(source)
            return run.id

    async def finalize_run(
        self,
        run_id: UUID,
        status: RunStatus,
        fetched: int,
        new: int,
        duplicate: int,
        failed: int,
        errors: List[str],
    ) -> None:
        async with self._session() as session:
            await IngestionRunRepository(session).finalize(
                run_id, status, fetched, new, duplicate, failed, errors
            )

    async def fingerprint_exists(self, fingerprint: str) -> bool:
        async with self._session() as session:
            return await RecordRepository(session).exists_fingerprint(fingerprint)

    async def recent_titles(self, kind: str, limit: int = 500) -> List[Tuple[UUID, str]]:
        async with self._session() as session:
            return await RecordRepository(session).recent_titles(kind, limit)

    async def insert_record(
        self,
        record: RecordBase,
        fingerprint: str,
        quality_score: float,
        requires_review: bool,
        run_id: Optional[UUID],
        document_id: Optional[UUID],
    ) -> Optional[UUID]:
        """Persist a record unless its fingerprint is already stored.

        Returns:
            The new record ID, or None when the insert collided
        """
        title = record.display_title()
        async with self._session() as session:
            row = await RecordRepository(session).insert_if_absent(
                kind=record.kind.value,
                fingerprint=fingerprint,
                document_id=document_id,
                run_id=run_id,
                title=title,
                normalized_title=normalize_title(title) if title else None,
                status=record.status.value,
                payload=record.model_dump(mode="json"),
                quality_score=quality_score,
                requires_review=requires_review,
                extraction_method=record.provenance.method.value,
                oracle_input_tokens=record.provenance.oracle_input_tokens,
                oracle_output_tokens=record.provenance.oracle_output_tokens,
            )
            return row.id if row is not None else None

    async def get_record(self, record_id: UUID) -> Optional[Record]:
        """Load a stored record as its typed variant, for reviewers."""
        async with self._session() as session:
            row = await RecordRepository(session).get_by_id(record_id)
        if row is None:
            return None
        return RECORD_ADAPTER.validate_python(row.payload)

    async def enqueue_review(
        self, record_id: UUID, reason: str, priority: ReviewPriority
    ) -> UUID:
        async with self._session() as session:
            item = await ReviewQueueRepository(session).enqueue(record_id, reason, priority)
            return item.id

    async def list_pending_reviews(
        self, priority: Optional[ReviewPriority] = None, limit: int = 200
    ) -> List[ReviewQueueItem]:
        async with self._session() as session:
            return await ReviewQueueRepository(session).list_pending(priority, limit)

    async def mark_reviewed(
        self, item_id: UUID, reviewer_note: Optional[str] = None
    ) -> Optional[ReviewQueueItem]:
        async with self._session() as session:
            return await ReviewQueueRepository(session).mark_reviewed(item_id, reviewer_note)

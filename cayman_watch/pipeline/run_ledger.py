"""Per-invocation counters backed by an ``ingestion_runs`` row."""

from typing import List, Optional
from uuid import UUID

from cayman_watch.core.exceptions import DatabaseError, PipelineError, RunAlreadyFinalizedError
from cayman_watch.models.runs import IngestionRunSummary, RunStatus
from cayman_watch.repositories.pipeline_storage import PipelineStorage
from cayman_watch.utils.logging import get_logger

LOGGER = get_logger(__name__)


class IngestionRunLedger:
    """Counts fetched/new/duplicate/failed items for one pipeline invocation.

    The run row is created by ``start`` and written a second time by
    ``finalize``, which may be called once.
    """

    def __init__(self, storage: PipelineStorage, source: str):
        self.storage = storage
        self.source = source
        self.run_id: Optional[UUID] = None
        self.fetched = 0
        self.new = 0
        self.duplicate = 0
        self.failed = 0
        self.review_queued = 0
        self.errors: List[str] = []
        self.record_ids: List[UUID] = []
        self._finalized = False

    async def start(self) -> UUID:
        self.run_id = await self.storage.start_run(self.source)
        LOGGER.info(f"Started ingestion run {self.run_id}", extra={"source": self.source})
        return self.run_id

    def record_fetched(self, count: int = 1) -> None:
        self.fetched += count

    def record_new(self, record_id: UUID) -> None:
        self.new += 1
        self.record_ids.append(record_id)

    def record_duplicate(self) -> None:
        self.duplicate += 1

    def record_failed(self, error: str) -> None:
        self.failed += 1
        self.errors.append(error)

    def record_error(self, error: str) -> None:
        """Note a non-fatal problem that did not cost an item."""
        self.errors.append(error)

    def record_review_queued(self) -> None:
        self.review_queued += 1

    def summary(self, status: RunStatus) -> IngestionRunSummary:
        return IngestionRunSummary(
            run_id=self.run_id,
            status=status,
            fetched=self.fetched,
            new=self.new,
            duplicate=self.duplicate,
            failed=self.failed,
            review_queued=self.review_queued,
            errors=list(self.errors),
            record_ids=list(self.record_ids),
        )

    async def finalize(
        self, status: RunStatus, error: Optional[BaseException] = None
    ) -> IngestionRunSummary:
        """Write the run's final counts and status.

        On the failure path a storage outage while writing is logged and the
        in-memory summary is still returned.

        Args:
            status: Completed or failed
            error: Error that failed the run, recorded in the error list

        Returns:
            IngestionRunSummary: Final counts

        Raises:
            RunAlreadyFinalizedError: On a second call
        """
        if self._finalized:
            raise RunAlreadyFinalizedError(f"Ingestion run {self.run_id} already finalized")
        if self.run_id is None:
            raise PipelineError("Ingestion run was never started")
        self._finalized = True

        if error is not None:
            self.errors.append(f"{type(error).__name__}: {error}")

        if self.new + self.duplicate + self.failed > self.fetched:
            LOGGER.warning(
                "Run counts exceed fetched total",
                extra={"fetched": self.fetched, "new": self.new, "duplicate": self.duplicate, "failed": self.failed},
            )

        try:
            await self.storage.finalize_run(
                self.run_id,
                status,
                self.fetched,
                self.new,
                self.duplicate,
                self.failed,
                self.errors,
            )
        except DatabaseError:
            if status != RunStatus.FAILED:
                raise
            LOGGER.error(f"Could not persist failed run {self.run_id}", exc_info=True)

        LOGGER.info(
            f"Finalized ingestion run {self.run_id} as {status.value}",
            extra={
                "fetched": self.fetched,
                "new": self.new,
                "duplicate": self.duplicate,
                "failed": self.failed,
                "review_queued": self.review_queued,
            },
        )
        return self.summary(status)

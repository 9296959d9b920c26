"""Repository for ingestion run rows."""

from datetime import datetime, timezone
from typing import List
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from cayman_watch.core.exceptions import RunAlreadyFinalizedError
from cayman_watch.database.models import IngestionRun
from cayman_watch.models.runs import RunStatus
from cayman_watch.repositories.base_repository import BaseRepository


class IngestionRunRepository(BaseRepository[IngestionRun]):

    def __init__(self, session: AsyncSession):
        super().__init__(session, IngestionRun)

    async def start(self, source: str) -> IngestionRun:
        return await self.create(source=source, status=RunStatus.RUNNING.value, errors=[])

    async def finalize(
        self,
        run_id: UUID,
        status: RunStatus,
        fetched: int,
        new: int,
        duplicate: int,
        failed: int,
        errors: List[str],
    ) -> IngestionRun:
        """Write final counts and status for a run.

        Raises:
            RunAlreadyFinalizedError: If the run is not in the running state
        """
        run = await self.get_by_id(run_id)
        if run is None:
            raise RunAlreadyFinalizedError(f"Ingestion run {run_id} does not exist")
        if run.status != RunStatus.RUNNING.value:
            raise RunAlreadyFinalizedError(
                f"Ingestion run {run_id} already finalized as {run.status}"
            )

        run.status = status.value
        run.fetched_count = fetched
        run.new_count = new
        run.duplicate_count = duplicate
        run.failed_count = failed
        run.errors = list(errors)
        run.completed_at = datetime.now(timezone.utc)

        await self.session.flush()
        await self.session.commit()
        return run

"""Repository for the manual review queue."""

from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cayman_watch.database.models import ReviewQueueItem
from cayman_watch.models.review import ReviewPriority
from cayman_watch.repositories.base_repository import BaseRepository


class ReviewQueueRepository(BaseRepository[ReviewQueueItem]):
    """Review queue access for the pipeline and the review UI.

    The pipeline only ever enqueues. Marking an item reviewed is left to the
    review interface.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(session, ReviewQueueItem)

    async def enqueue(
        self, record_id: UUID, reason: str, priority: ReviewPriority
    ) -> ReviewQueueItem:
        return await self.create(
            record_id=record_id,
            reason=reason,
            priority=priority.value,
            reviewed=False,
        )

    async def list_pending(
        self, priority: Optional[ReviewPriority] = None, limit: int = 200
    ) -> List[ReviewQueueItem]:
        """Unreviewed items, high priority first, oldest first within a priority.

        Args:
            priority: Only return items of this priority
            limit: Maximum number of items

        Returns:
            List of pending review items
        """
        query = select(ReviewQueueItem).where(ReviewQueueItem.reviewed.is_(False))
        if priority is not None:
            query = query.where(ReviewQueueItem.priority == priority.value)
        query = query.order_by(
            ReviewQueueItem.priority.asc(), ReviewQueueItem.created_at.asc()
        ).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def mark_reviewed(
        self, item_id: UUID, reviewer_note: Optional[str] = None
    ) -> Optional[ReviewQueueItem]:
        """Move an item to its terminal reviewed state.

        Args:
            item_id: Review item ID
            reviewer_note: Optional note left by the reviewer

        Returns:
            The updated item, or None if it does not exist
        """
        return await self.update(
            item_id,
            reviewed=True,
            reviewer_note=reviewer_note,
            reviewed_at=datetime.now(timezone.utc),
        )

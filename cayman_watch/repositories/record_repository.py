"""Repository for persisted records."""

from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cayman_watch.database.models import ExtractedRecord
from cayman_watch.repositories.base_repository import BaseRepository


class RecordRepository(BaseRepository[ExtractedRecord]):
    """Reads and writes ``records`` rows keyed by fingerprint."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, ExtractedRecord)

    async def exists_fingerprint(self, fingerprint: str) -> bool:
        query = select(ExtractedRecord.id).where(ExtractedRecord.fingerprint == fingerprint)
        result = await self.session.execute(query)
        return result.first() is not None

    async def insert_if_absent(self, **kwargs) -> Optional[ExtractedRecord]:
        """Insert a record unless its fingerprint already exists.

        The unique constraint on ``fingerprint`` decides; a violation means a
        concurrent run stored the same record first.

        Args:
            **kwargs: Column values, including ``fingerprint``

        Returns:
            The new row, or None when the fingerprint was already taken
        """
        instance = ExtractedRecord(**kwargs)
        self.session.add(instance)
        try:
            await self.session.flush()
            await self.session.commit()
            return instance
        except IntegrityError:
            await self.session.rollback()
            self.logger.info(
                "Fingerprint collision on insert, treating as duplicate",
                extra={"fingerprint": kwargs.get("fingerprint")},
            )
            return None
        except SQLAlchemyError as e:
            await self.session.rollback()
            self.logger.error(f"Error inserting record: {str(e)}", exc_info=True)
            raise

    async def recent_titles(self, kind: str, limit: int = 500) -> List[Tuple[UUID, str]]:
        """Most recent normalized titles of one record kind.

        Args:
            kind: Record kind value
            limit: Maximum number of titles

        Returns:
            (record id, normalized title) pairs, newest first
        """
        query = (
            select(ExtractedRecord.id, ExtractedRecord.normalized_title)
            .where(ExtractedRecord.kind == kind)
            .where(ExtractedRecord.normalized_title.is_not(None))
            .order_by(ExtractedRecord.created_at.desc())
            .limit(limit)
        )
        result = await self.session.execute(query)
        return [(row[0], row[1]) for row in result.all()]


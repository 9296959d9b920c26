"""Repository for ingested source documents."""

from sqlalchemy.ext.asyncio import AsyncSession

from cayman_watch.database.models import SourceDocument
from cayman_watch.models.documents import Document
from cayman_watch.repositories.base_repository import BaseRepository


class DocumentRepository(BaseRepository[SourceDocument]):

    def __init__(self, session: AsyncSession):
        super().__init__(session, SourceDocument)

    async def save_if_new(self, document: Document) -> SourceDocument:
        """Store a document row once; later calls return the existing row."""
        existing = await self.get_by_id(document.id)
        if existing is not None:
            return existing
        return await self.create(
            id=document.id,
            kind=document.kind.value,
            title=document.title,
            source_url=document.source_url,
            published_at=document.published_at,
            text_length=len(document.text),
            additional_metadata=dict(document.metadata),
        )

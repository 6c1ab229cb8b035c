import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.document import Document


class DocumentRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, document_id: uuid.UUID) -> Document | None:
        return await self.session.get(Document, document_id)

    async def create(self, **values) -> Document:
        document = Document(**values)
        self.session.add(document)
        await self.session.flush()
        return document

    async def delete(self, document: Document) -> None:
        await self.session.delete(document)
        await self.session.flush()

    async def list_for_exchanges(
        self,
        exchange_ids: list[uuid.UUID],
        *,
        category: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Document], int]:
        conditions = [Document.exchange_id.in_(exchange_ids)]
        if category is not None:
            conditions.append(Document.category == category)
        total = await self.session.scalar(
            select(func.count()).select_from(Document).where(*conditions)
        )
        result = await self.session.execute(
            select(Document)
            .where(*conditions)
            .order_by(Document.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), int(total or 0)

import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.template import DocumentTemplate


class TemplateRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, template_id: uuid.UUID) -> DocumentTemplate | None:
        return await self.session.get(DocumentTemplate, template_id)

    async def create(self, **values) -> DocumentTemplate:
        template = DocumentTemplate(**values)
        self.session.add(template)
        await self.session.flush()
        return template

    async def delete(self, template: DocumentTemplate) -> None:
        await self.session.delete(template)
        await self.session.flush()

    async def list_by_filters(
        self,
        *,
        category: str | None = None,
        is_active: bool | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[DocumentTemplate], int]:
        conditions = []
        if category is not None:
            conditions.append(DocumentTemplate.category == category)
        if is_active is not None:
            conditions.append(DocumentTemplate.is_active.is_(is_active))
        total = await self.session.scalar(
            select(func.count()).select_from(DocumentTemplate).where(*conditions)
        )
        result = await self.session.execute(
            select(DocumentTemplate)
            .where(*conditions)
            .order_by(DocumentTemplate.name)
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), int(total or 0)

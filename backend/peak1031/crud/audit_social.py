import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.audit_social import AuditAssignment, AuditComment, AuditLike


class AuditSocialRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, entity):
        self.session.add(entity)
        await self.session.flush()
        return entity

    async def delete(self, entity) -> None:
        await self.session.delete(entity)
        await self.session.flush()

    async def get_comment(self, comment_id: uuid.UUID) -> AuditComment | None:
        return await self.session.get(AuditComment, comment_id)

    async def get_assignment(self, assignment_id: uuid.UUID) -> AuditAssignment | None:
        return await self.session.get(AuditAssignment, assignment_id)

    async def get_like(self, audit_log_id: uuid.UUID, user_id: uuid.UUID) -> AuditLike | None:
        result = await self.session.execute(
            select(AuditLike).where(
                AuditLike.audit_log_id == audit_log_id, AuditLike.user_id == user_id
            )
        )
        return result.scalars().first()

    async def comments_for(self, audit_log_id: uuid.UUID) -> list[AuditComment]:
        result = await self.session.execute(
            select(AuditComment)
            .where(AuditComment.audit_log_id == audit_log_id)
            .order_by(AuditComment.created_at)
        )
        return list(result.scalars().all())

    async def likes_for(self, audit_log_id: uuid.UUID) -> list[AuditLike]:
        result = await self.session.execute(
            select(AuditLike)
            .where(AuditLike.audit_log_id == audit_log_id)
            .order_by(AuditLike.created_at)
        )
        return list(result.scalars().all())

    async def assignments_for(self, audit_log_id: uuid.UUID) -> list[AuditAssignment]:
        result = await self.session.execute(
            select(AuditAssignment)
            .where(AuditAssignment.audit_log_id == audit_log_id)
            .order_by(AuditAssignment.created_at)
        )
        return list(result.scalars().all())

    async def reaction_counts(self, audit_log_id: uuid.UUID) -> dict[str, int]:
        result = await self.session.execute(
            select(AuditLike.reaction_type, func.count())
            .where(AuditLike.audit_log_id == audit_log_id)
            .group_by(AuditLike.reaction_type)
        )
        return {reaction: total for reaction, total in result.all()}

    async def comments_by_user(self, user_id: uuid.UUID, limit: int = 50) -> list[AuditComment]:
        result = await self.session.execute(
            select(AuditComment)
            .where(AuditComment.user_id == user_id)
            .order_by(AuditComment.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def likes_by_user(self, user_id: uuid.UUID, limit: int = 50) -> list[AuditLike]:
        result = await self.session.execute(
            select(AuditLike)
            .where(AuditLike.user_id == user_id)
            .order_by(AuditLike.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def assignments_for_user(self, user_id: uuid.UUID, limit: int = 50) -> list[AuditAssignment]:
        result = await self.session.execute(
            select(AuditAssignment)
            .where(AuditAssignment.assigned_to == user_id)
            .order_by(AuditAssignment.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

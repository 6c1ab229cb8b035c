import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import and_, distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.audit_log import AuditLog


class AuditLogRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        actor_id: uuid.UUID | None,
        actor_type: str,
        action: str,
        entity_type: str,
        entity_id: str,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
        reason: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuditLog:
        audit_log = AuditLog(
            actor_id=actor_id,
            actor_type=actor_type,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            before=before,
            after=after,
            reason=reason,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        # The caller owns the transaction
        self.session.add(audit_log)
        await self.session.flush()
        return audit_log

    async def get_by_id(self, audit_log_id: uuid.UUID) -> AuditLog | None:
        return await self.session.get(AuditLog, audit_log_id)

    async def list_by_entity(self, entity_type: str, entity_id: str, limit: int = 100) -> list[AuditLog]:
        result = await self.session.execute(
            select(AuditLog)
            .where(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
            .order_by(AuditLog.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    def _conditions(
        self,
        actor_id: uuid.UUID | None = None,
        actor_type: str | None = None,
        action: str | None = None,
        entity_type: str | None = None,
        entity_id: str | None = None,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
    ) -> list:
        conditions = []
        if actor_id is not None:
            conditions.append(AuditLog.actor_id == actor_id)
        if actor_type is not None:
            conditions.append(AuditLog.actor_type == actor_type)
        if action is not None:
            conditions.append(AuditLog.action == action)
        if entity_type is not None:
            conditions.append(AuditLog.entity_type == entity_type)
        if entity_id is not None:
            conditions.append(AuditLog.entity_id == entity_id)
        if from_date is not None:
            conditions.append(AuditLog.created_at >= from_date)
        if to_date is not None:
            conditions.append(AuditLog.created_at <= to_date)
        return conditions

    async def list_by_filters(
        self,
        actor_id: uuid.UUID | None = None,
        actor_type: str | None = None,
        action: str | None = None,
        entity_type: str | None = None,
        entity_id: str | None = None,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[AuditLog], int]:
        conditions = self._conditions(
            actor_id, actor_type, action, entity_type, entity_id, from_date, to_date
        )
        query = select(AuditLog)
        count_query = select(func.count()).select_from(AuditLog)
        if conditions:
            query = query.where(and_(*conditions))
            count_query = count_query.where(and_(*conditions))

        total = await self.session.scalar(count_query)
        result = await self.session.execute(
            query.order_by(AuditLog.created_at.desc()).limit(limit).offset(offset)
        )
        return list(result.scalars().all()), int(total or 0)

    async def count_since(self, since: datetime | None = None) -> int:
        query = select(func.count()).select_from(AuditLog)
        if since is not None:
            query = query.where(AuditLog.created_at >= since)
        return int(await self.session.scalar(query) or 0)

    async def count_by_action(self, limit: int = 20) -> list[tuple[str, int]]:
        result = await self.session.execute(
            select(AuditLog.action, func.count().label("total"))
            .group_by(AuditLog.action)
            .order_by(func.count().desc())
            .limit(limit)
        )
        return [(action, total) for action, total in result.all()]

    async def count_by_entity_type(self) -> dict[str, int]:
        result = await self.session.execute(
            select(AuditLog.entity_type, func.count()).group_by(AuditLog.entity_type)
        )
        return {entity_type: total for entity_type, total in result.all()}

    async def distinct_actions(self) -> list[str]:
        result = await self.session.execute(
            select(distinct(AuditLog.action)).order_by(AuditLog.action)
        )
        return list(result.scalars().all())

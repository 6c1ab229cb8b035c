import uuid
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from ..crud.audit_log import AuditLogRepository
from ..errors import NotFoundError
from ..models.audit_log import AuditLog
from ..models.user import User
from ..schemas.audit_log import ActionCount, AuditLogStats
from ..utils.time import utcnow
from .context import EMPTY_CONTEXT, RequestContext
from .permission_service import PermissionService


class AuditQueryService:
    """Read side of the audit log for admins and coordinators."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.repo = AuditLogRepository(session)
        self.permissions = PermissionService(session)

    async def _require(self, actor: User, context: RequestContext) -> None:
        await self.permissions.require_permission(actor, "system.view_audit", context=context)

    async def list_logs(
        self,
        actor: User,
        *,
        actor_id: uuid.UUID | None = None,
        actor_type: str | None = None,
        action: str | None = None,
        entity_type: str | None = None,
        entity_id: str | None = None,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
        limit: int = 100,
        offset: int = 0,
        context: RequestContext = EMPTY_CONTEXT,
    ) -> tuple[list[AuditLog], int]:
        await self._require(actor, context)
        return await self.repo.list_by_filters(
            actor_id=actor_id,
            actor_type=actor_type,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            from_date=from_date,
            to_date=to_date,
            limit=limit,
            offset=offset,
        )

    async def get_log(
        self, audit_log_id: uuid.UUID, actor: User, context: RequestContext = EMPTY_CONTEXT
    ) -> AuditLog:
        await self._require(actor, context)
        entry = await self.repo.get_by_id(audit_log_id)
        if entry is None:
            raise NotFoundError("Audit log not found")
        return entry

    async def stats(self, actor: User, context: RequestContext = EMPTY_CONTEXT) -> AuditLogStats:
        await self._require(actor, context)
        now = utcnow()
        return AuditLogStats(
            total=await self.repo.count_since(),
            last_24h=await self.repo.count_since(now - timedelta(hours=24)),
            last_7d=await self.repo.count_since(now - timedelta(days=7)),
            by_action=[
                ActionCount(action=action, count=count)
                for action, count in await self.repo.count_by_action()
            ],
            by_entity_type=await self.repo.count_by_entity_type(),
        )

    async def actions(self, actor: User, context: RequestContext = EMPTY_CONTEXT) -> list[str]:
        await self._require(actor, context)
        return await self.repo.distinct_actions()

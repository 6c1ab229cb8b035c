from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..dependencies import get_current_user, get_db, get_request_context
from ..models.user import User
from ..schemas.audit_log import AuditLogRead, AuditLogStats
from ..schemas.common import Page, page_of
from ..services.audit_query_service import AuditQueryService
from ..services.context import RequestContext

router = APIRouter(prefix="/audit-logs", tags=["audit-logs"])


@router.get("", response_model=Page[AuditLogRead])
async def list_audit_logs(
    actor_id: UUID | None = Query(None),
    actor_type: str | None = Query(None, description="user, system or anonymous"),
    action: str | None = Query(None),
    entity_type: str | None = Query(None),
    entity_id: str | None = Query(None),
    from_date: datetime | None = Query(None),
    to_date: datetime | None = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
) -> Page[AuditLogRead]:
    items, total = await AuditQueryService(db).list_logs(
        current_user,
        actor_id=actor_id,
        actor_type=actor_type,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        from_date=from_date,
        to_date=to_date,
        limit=limit,
        offset=offset,
        context=context,
    )
    return page_of(AuditLogRead, items, total, limit, offset)


@router.get("/stats", response_model=AuditLogStats)
async def audit_log_stats(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
) -> AuditLogStats:
    return await AuditQueryService(db).stats(current_user, context)


@router.get("/actions", response_model=list[str])
async def audit_log_actions(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
) -> list[str]:
    return await AuditQueryService(db).actions(current_user, context)


@router.get("/{audit_log_id}", response_model=AuditLogRead)
async def get_audit_log(
    audit_log_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    return await AuditQueryService(db).get_log(audit_log_id, current_user, context)

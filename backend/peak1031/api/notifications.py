from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..dependencies import get_current_user, get_db
from ..models.user import User
from ..schemas.common import Page, page_of
from ..schemas.notification import MarkAllReadResult, NotificationCount, NotificationRead
from ..services.notification_service import NotificationService

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=Page[NotificationRead])
async def list_notifications(
    unread_only: bool = Query(False, description="Only unread notifications"),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Page[NotificationRead]:
    items, total = await NotificationService(db).list_for_user(
        current_user, unread_only=unread_only, limit=limit, offset=offset
    )
    return page_of(NotificationRead, items, total, limit, offset)


@router.get("/unread-count", response_model=NotificationCount)
async def unread_count(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> NotificationCount:
    return NotificationCount(unread=await NotificationService(db).unread_count(current_user))


@router.put("/mark-all-read", response_model=MarkAllReadResult)
async def mark_all_read(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> MarkAllReadResult:
    return MarkAllReadResult(updated=await NotificationService(db).mark_all_read(current_user))


@router.put("/{notification_id}/read", response_model=NotificationRead)
async def mark_read(
    notification_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await NotificationService(db).mark_read(current_user, notification_id)

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..dependencies import get_current_user, get_db, get_request_context
from ..models.user import User
from ..schemas.common import Page, page_of
from ..schemas.message import MessageCreate, MessageRead, UnreadCount
from ..services.context import RequestContext
from ..services.message_service import MessageService

router = APIRouter(prefix="/messages", tags=["messages"])
exchange_router = APIRouter(prefix="/exchanges/{exchange_id}/messages", tags=["messages"])


@exchange_router.get("", response_model=Page[MessageRead])
async def list_messages(
    exchange_id: UUID,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
) -> Page[MessageRead]:
    items, total = await MessageService(db).list_messages(
        exchange_id, current_user, limit=limit, offset=offset, context=context
    )
    return page_of(MessageRead, items, total, limit, offset)


@exchange_router.post("", response_model=MessageRead, status_code=status.HTTP_201_CREATED)
async def send_message(
    exchange_id: UUID,
    payload: MessageCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    return await MessageService(db).send(exchange_id, payload, current_user, context)


@router.get("/unread-count", response_model=UnreadCount)
async def unread_count(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> UnreadCount:
    return UnreadCount(unread=await MessageService(db).unread_count(current_user))


@router.get("/recent", response_model=Page[MessageRead])
async def recent_messages(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Page[MessageRead]:
    items, total = await MessageService(db).recent(current_user, limit=limit, offset=offset)
    return page_of(MessageRead, items, total, limit, offset)


@router.put("/{message_id}/read", response_model=MessageRead)
async def mark_read(
    message_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    return await MessageService(db).mark_read(message_id, current_user, context)


@router.delete("/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_message(
    message_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
) -> Response:
    await MessageService(db).delete(message_id, current_user, context)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

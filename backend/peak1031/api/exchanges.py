from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..dependencies import get_current_user, get_db, get_request_context
from ..models.user import User
from ..schemas.common import Page, page_of
from ..schemas.exchange import ExchangeCreate, ExchangeRead, ExchangeUpdate
from ..schemas.participant import (
    ExchangePermissionsRead,
    ExchangePermissionsUpdate,
    ParticipantCreate,
    ParticipantRead,
    ParticipantUpdate,
)
from ..services.context import RequestContext
from ..services.exchange_service import ExchangeService
from ..services.participant_service import ParticipantService

router = APIRouter(prefix="/exchanges", tags=["exchanges"])


@router.get("", response_model=Page[ExchangeRead])
async def list_exchanges(
    status_filter: str | None = Query(None, alias="status", description="Filter by status"),
    stage: str | None = Query(None, description="Filter by workflow stage"),
    priority: str | None = Query(None, description="Filter by priority"),
    search: str | None = Query(None, description="Match name or exchange number"),
    coordinator_id: UUID | None = Query(None),
    client_id: UUID | None = Query(None),
    sort_by: str = Query("created_at", description="Sort field"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    limit: int = Query(30, ge=1, le=100, description="Results per page"),
    offset: int = Query(0, ge=0, description="Offset for pagination"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Page[ExchangeRead]:
    items, total = await ExchangeService(db).list_exchanges(
        current_user,
        status=status_filter,
        stage=stage,
        priority=priority,
        search=search,
        coordinator_id=coordinator_id,
        client_id=client_id,
        sort_by=sort_by,
        sort_order=sort_order,
        limit=limit,
        offset=offset,
    )
    return page_of(ExchangeRead, items, total, limit, offset)


@router.post("", response_model=ExchangeRead, status_code=status.HTTP_201_CREATED)
async def create_exchange(
    payload: ExchangeCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    return await ExchangeService(db).create_exchange(payload, current_user, context)


@router.get("/{exchange_id}", response_model=ExchangeRead)
async def get_exchange(
    exchange_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    return await ExchangeService(db).get_exchange(exchange_id, current_user, context)


@router.put("/{exchange_id}", response_model=ExchangeRead)
async def update_exchange(
    exchange_id: UUID,
    payload: ExchangeUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    return await ExchangeService(db).update_exchange(exchange_id, payload, current_user, context)


@router.delete("/{exchange_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_exchange(
    exchange_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
) -> Response:
    await ExchangeService(db).delete_exchange(exchange_id, current_user, context)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{exchange_id}/participants", response_model=list[ParticipantRead])
async def list_participants(
    exchange_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    return await ParticipantService(db).list_participants(exchange_id, current_user, context)


@router.post(
    "/{exchange_id}/participants",
    response_model=ParticipantRead,
    status_code=status.HTTP_201_CREATED,
)
async def add_participant(
    exchange_id: UUID,
    payload: ParticipantCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    return await ParticipantService(db).add_participant(exchange_id, payload, current_user, context)


@router.put("/{exchange_id}/participants/{user_id}", response_model=ParticipantRead)
async def update_participant(
    exchange_id: UUID,
    user_id: UUID,
    payload: ParticipantUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    return await ParticipantService(db).update_participant(
        exchange_id, user_id, payload, current_user, context
    )


@router.delete("/{exchange_id}/participants/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_participant(
    exchange_id: UUID,
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
) -> Response:
    await ParticipantService(db).remove_participant(exchange_id, user_id, current_user, context)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{exchange_id}/permissions", response_model=ExchangePermissionsRead)
async def my_permissions(
    exchange_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    """Resolved flags and visible tabs for the caller on this exchange."""
    return await ParticipantService(db).my_permissions(exchange_id, current_user, context)


@router.get("/{exchange_id}/permissions/{user_id}", response_model=ExchangePermissionsRead)
async def user_permissions(
    exchange_id: UUID,
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    return await ParticipantService(db).user_permissions(exchange_id, user_id, current_user, context)


@router.put("/{exchange_id}/permissions/{user_id}", response_model=ExchangePermissionsRead)
async def set_user_permissions(
    exchange_id: UUID,
    user_id: UUID,
    payload: ExchangePermissionsUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    return await ParticipantService(db).set_user_permissions(
        exchange_id, user_id, payload, current_user, context
    )


@router.get("/{exchange_id}/all-permissions", response_model=list[ExchangePermissionsRead])
async def all_permissions(
    exchange_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    return await ParticipantService(db).all_permissions(exchange_id, current_user, context)

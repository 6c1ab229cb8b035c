from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..dependencies import get_current_user, get_db, get_request_context
from ..models.user import User
from ..schemas.exchange import ExchangeRead
from ..schemas.stage import (
    ChecklistUpdate,
    StageAdvanceRequest,
    StageCancelRequest,
    StageDefinitionRead,
    StageStatusRead,
)
from ..services.context import RequestContext
from ..services.stage_service import StageService, stage_catalog

router = APIRouter(prefix="/stages", tags=["stages"])
exchange_router = APIRouter(prefix="/exchanges/{exchange_id}/stage", tags=["stages"])


@router.get("", response_model=list[StageDefinitionRead])
async def list_stages(_: User = Depends(get_current_user)) -> list[StageDefinitionRead]:
    return stage_catalog()


@exchange_router.get("", response_model=StageStatusRead)
async def get_stage_status(
    exchange_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
) -> StageStatusRead:
    return await StageService(db).get_status(exchange_id, current_user, context)


@exchange_router.post("/advance", response_model=ExchangeRead)
async def advance_stage(
    exchange_id: UUID,
    payload: StageAdvanceRequest | None = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    """
    Move the exchange to its next stage.

    Returns 403 when the caller lacks stage authority and 409 with the list
    of missing requirements when the current stage is not complete.
    """
    return await StageService(db).advance(
        exchange_id,
        current_user,
        notes=payload.notes if payload else None,
        context=context,
    )


@exchange_router.post("/cancel", response_model=ExchangeRead)
async def cancel_exchange(
    exchange_id: UUID,
    payload: StageCancelRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    return await StageService(db).cancel(
        exchange_id, current_user, reason=payload.reason, context=context
    )


@exchange_router.put("/checklist", response_model=ExchangeRead)
async def update_checklist(
    exchange_id: UUID,
    payload: ChecklistUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    return await StageService(db).update_checklist(exchange_id, current_user, payload.items, context)

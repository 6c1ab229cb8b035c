from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..dependencies import get_current_user, get_db, get_request_context
from ..models.user import User
from ..schemas.invitation import (
    ExchangeMembers,
    InvitationAccept,
    InvitationAcceptResult,
    InvitationBatch,
    InvitationDetails,
    InvitationIssued,
    InvitationList,
    InvitationRead,
    InvitationSendResult,
)
from ..services.context import RequestContext
from ..services.invitation_service import InvitationService

router = APIRouter(prefix="/invitations", tags=["invitations"])
exchange_router = APIRouter(prefix="/exchanges/{exchange_id}", tags=["invitations"])


@exchange_router.post("/invitations", response_model=list[InvitationSendResult])
async def send_invitations(
    exchange_id: UUID,
    payload: InvitationBatch,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    return await InvitationService(db).send(exchange_id, payload, current_user, context)


@exchange_router.get("/invitations", response_model=InvitationList)
async def list_exchange_invitations(
    exchange_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    return await InvitationService(db).list_for_exchange(exchange_id, current_user, context)


@exchange_router.get("/users-and-invitations", response_model=ExchangeMembers)
async def users_and_invitations(
    exchange_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    return await InvitationService(db).members(exchange_id, current_user, context)


@router.get("", response_model=list[InvitationRead])
async def my_invitations(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await InvitationService(db).list_mine(current_user)


# Public: the invitee has no account yet
@router.get("/details/{token}", response_model=InvitationDetails)
async def invitation_details(token: str, db: AsyncSession = Depends(get_db)):
    return await InvitationService(db).details(token)


@router.post(
    "/accept/{token}",
    response_model=InvitationAcceptResult,
    status_code=status.HTTP_201_CREATED,
)
async def accept_invitation(
    token: str,
    payload: InvitationAccept,
    db: AsyncSession = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    return await InvitationService(db).accept(token, payload, context)


@router.post("/{invitation_id}/resend", response_model=InvitationIssued)
async def resend_invitation(
    invitation_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    return await InvitationService(db).resend(invitation_id, current_user, context)


@router.delete("/{invitation_id}", response_model=InvitationRead)
async def revoke_invitation(
    invitation_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    return await InvitationService(db).revoke(invitation_id, current_user, context)

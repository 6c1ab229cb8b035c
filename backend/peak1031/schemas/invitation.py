import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .participant import AccessLevel, ParticipantRead, ParticipantRole
from .user import UserRead, _normalize_email

SendStatus = Literal["invitation_sent", "added_existing_user", "already_participant", "already_invited"]


class InvitationCreate(BaseModel):
    email: str = Field(..., max_length=255)
    role: ParticipantRole = "client"
    access_level: AccessLevel | None = None
    first_name: str | None = Field(None, max_length=100)
    last_name: str | None = Field(None, max_length=100)
    phone: str | None = Field(None, max_length=50)

    @field_validator("email")
    @classmethod
    def _email(cls, value: str) -> str:
        return _normalize_email(value)


class InvitationBatch(BaseModel):
    invitations: list[InvitationCreate] = Field(..., min_length=1, max_length=50)
    message: str | None = Field(None, max_length=500)


class InvitationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    exchange_id: uuid.UUID
    email: str
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    role: str
    access_level: str | None = None
    status: str
    custom_message: str | None = None
    invited_by: uuid.UUID | None = None
    user_id: uuid.UUID | None = None
    expires_at: datetime
    accepted_at: datetime | None = None
    cancelled_at: datetime | None = None
    created_at: datetime


class InvitationSendResult(BaseModel):
    email: str
    status: SendStatus
    invitation: InvitationRead | None = None
    # raw token, returned once so the inviter can deliver the link
    token: str | None = None


class InvitationIssued(BaseModel):
    invitation: InvitationRead
    token: str


class InvitationList(BaseModel):
    items: list[InvitationRead]
    total: int
    pending: int
    accepted: int
    cancelled: int
    expired: int


class InvitationDetails(BaseModel):
    email: str
    first_name: str | None = None
    last_name: str | None = None
    role: str
    custom_message: str | None = None
    exchange_id: uuid.UUID
    exchange_name: str
    exchange_number: str
    inviter_name: str | None = None
    expires_at: datetime


class InvitationAccept(BaseModel):
    password: str = Field(..., min_length=8, max_length=128)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    phone: str | None = Field(None, max_length=50)


class InvitationAcceptResult(BaseModel):
    user: UserRead
    exchange_id: uuid.UUID
    role: str
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class ExchangeMembers(BaseModel):
    participants: list[ParticipantRead]
    invitations: list[InvitationRead]

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

ParticipantRole = Literal["coordinator", "client", "third_party", "agency"]
AccessLevel = Literal["none", "read", "write", "admin"]


class ParticipantCreate(BaseModel):
    user_id: uuid.UUID
    role: ParticipantRole = "third_party"
    access_level: AccessLevel | None = None
    permissions: dict[str, bool] = Field(default_factory=dict)


class ParticipantUpdate(BaseModel):
    role: ParticipantRole | None = None
    access_level: AccessLevel | None = None
    permissions: dict[str, bool] | None = None


class ParticipantRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    # Client and coordinator are listed without a participant row
    id: uuid.UUID | None = None
    exchange_id: uuid.UUID
    user_id: uuid.UUID
    role: str
    access_level: str | None = None
    permissions: dict[str, bool] = Field(default_factory=dict)
    is_active: bool
    added_by: uuid.UUID | None = None
    created_at: datetime | None = None


class ExchangePermissionsRead(BaseModel):
    exchange_id: uuid.UUID
    user_id: uuid.UUID
    role: str | None = None
    access_level: str | None = None
    is_system_admin: bool = False
    permissions: dict[str, bool]
    overrides: dict[str, bool] = Field(default_factory=dict)
    tabs: list[str]


class ExchangePermissionsUpdate(BaseModel):
    access_level: AccessLevel | None = None
    permissions: dict[str, bool] | None = None
    reset_overrides: bool = False

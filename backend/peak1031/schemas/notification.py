import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict


class NotificationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    type: str
    title: str
    message: str
    exchange_id: uuid.UUID | None = None
    urgent: bool
    is_read: bool
    read_at: datetime | None = None
    created_at: datetime


class NotificationCount(BaseModel):
    unread: int


class MarkAllReadResult(BaseModel):
    updated: int

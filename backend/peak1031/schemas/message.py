import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


class MessageCreate(BaseModel):
    content: str = Field(..., max_length=10000)
    attachment_id: uuid.UUID | None = None

    @field_validator("content")
    @classmethod
    def _strip(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Message content is required")
        return value


class MessageRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    exchange_id: uuid.UUID
    sender_id: uuid.UUID | None = None
    content: str
    attachment_id: uuid.UUID | None = None
    read_by: list[str] = Field(default_factory=list)
    created_at: datetime


class UnreadCount(BaseModel):
    unread: int

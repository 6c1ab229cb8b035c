import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict


class AuditLogRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    actor_id: uuid.UUID | None = None
    actor_type: str
    action: str
    entity_type: str
    entity_id: str
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = None
    reason: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    created_at: datetime


class ActionCount(BaseModel):
    action: str
    count: int


class AuditLogStats(BaseModel):
    total: int
    last_24h: int
    last_7d: int
    by_action: list[ActionCount]
    by_entity_type: dict[str, int]

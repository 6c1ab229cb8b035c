import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class RequiredTaskRead(BaseModel):
    id: str
    label: str
    description: str
    required: bool


class AutomaticActionRead(BaseModel):
    id: str
    label: str
    trigger: str
    delay_days: int | None = None


class StageNotificationRead(BaseModel):
    trigger: str
    recipients: list[str]
    template: str
    urgent: bool


class StageDefinitionRead(BaseModel):
    stage: str
    label: str
    description: str
    order: int | None
    auto_advance: bool
    requires_approval: bool
    days_to_complete: int | None = None
    required_tasks: list[RequiredTaskRead]
    automatic_actions: list[AutomaticActionRead]
    notifications: list[StageNotificationRead]


class TaskCheckRead(BaseModel):
    id: str
    label: str
    description: str
    required: bool
    satisfied: bool
    source: str


class StageHistoryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    stage: str
    entered_at: datetime
    completed_at: datetime | None = None
    changed_by: uuid.UUID | None = None
    notes: str | None = None


class StageStatusRead(BaseModel):
    exchange_id: uuid.UUID
    current_stage: StageDefinitionRead
    checks: list[TaskCheckRead]
    missing_requirements: list[str]
    can_advance: bool
    blocked_reason: str | None = None
    next_stage: str | None = None
    progress_percent: int
    days_in_stage: int | None = None
    is_overdue: bool = False
    history: list[StageHistoryRead]


class StageAdvanceRequest(BaseModel):
    notes: str | None = Field(None, max_length=2000)


class StageCancelRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=2000)


class ChecklistUpdate(BaseModel):
    items: dict[str, bool] = Field(..., min_length=1)

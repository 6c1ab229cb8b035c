import uuid
from datetime import date, datetime
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

TaskStatus = Literal["PENDING", "IN_PROGRESS", "COMPLETED", "CANCELLED"]
TaskPriority = Literal["LOW", "MEDIUM", "HIGH", "URGENT"]


class TaskDraft(BaseModel):
    """Task body posted under an exchange; the exchange comes from the path."""

    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    priority: TaskPriority = "MEDIUM"
    assigned_to: uuid.UUID | None = None
    due_date: date | None = None


class TaskCreate(TaskDraft):
    exchange_id: uuid.UUID


class TaskUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    assigned_to: uuid.UUID | None = None
    due_date: date | None = None


class TaskRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    exchange_id: uuid.UUID
    title: str
    description: str | None = None
    status: str
    priority: str
    assigned_to: uuid.UUID | None = None
    created_by: uuid.UUID | None = None
    due_date: date | None = None
    completed_at: datetime | None = None
    metadata: dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("meta", "metadata")
    )
    created_at: datetime
    updated_at: datetime


class RolloverRequest(BaseModel):
    dry_run: bool = False


class RolloverEntry(BaseModel):
    task_id: uuid.UUID
    title: str
    original_due_date: date
    new_due_date: date
    days_overdue: int


class RolloverSkip(BaseModel):
    task_id: uuid.UUID
    reason: str


class RolloverResult(BaseModel):
    success: bool
    message: str | None = None
    dry_run: bool = False
    tasks_checked: int = 0
    tasks_rolled_over: int = 0
    tasks_skipped: int = 0
    rolled_over: list[RolloverEntry] = Field(default_factory=list)
    skipped: list[RolloverSkip] = Field(default_factory=list)

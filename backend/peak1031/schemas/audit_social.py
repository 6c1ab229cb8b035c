import uuid
from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

ReactionType = Literal["like", "love", "insightful", "concern", "resolved"]
AssignmentStatus = Literal["open", "in_progress", "resolved", "dismissed"]
AssignmentPriority = Literal["LOW", "MEDIUM", "HIGH", "URGENT"]


class _ContentModel(BaseModel):
    content: str = Field(..., max_length=5000)

    @field_validator("content")
    @classmethod
    def _strip(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Comment content is required")
        return value


class CommentCreate(_ContentModel):
    parent_id: uuid.UUID | None = None
    mentions: list[uuid.UUID] = Field(default_factory=list)


class CommentUpdate(_ContentModel):
    pass


class CommentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    audit_log_id: uuid.UUID
    user_id: uuid.UUID | None = None
    parent_id: uuid.UUID | None = None
    content: str
    mentions: list[str] = Field(default_factory=list)
    is_edited: bool
    edited_at: datetime | None = None
    created_at: datetime


class LikeRequest(BaseModel):
    reaction_type: ReactionType = "like"


class LikeResult(BaseModel):
    liked: bool
    reaction_type: str | None = None
    reactions: dict[str, int]


class AssignmentCreate(BaseModel):
    assigned_to: uuid.UUID
    assignment_type: str = Field("review", min_length=1, max_length=30)
    priority: AssignmentPriority = "MEDIUM"
    due_date: date | None = None
    notes: str | None = Field(None, max_length=5000)
    escalate: bool = False


class AssignmentUpdate(BaseModel):
    status: AssignmentStatus | None = None
    notes: str | None = Field(None, max_length=5000)
    priority: AssignmentPriority | None = None
    escalate: bool | None = None


class AssignmentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    audit_log_id: uuid.UUID
    assigned_to: uuid.UUID
    assigned_by: uuid.UUID | None = None
    assignment_type: str
    priority: str
    status: str
    escalated: bool
    due_date: date | None = None
    notes: str | None = None
    created_at: datetime


class LikeRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: uuid.UUID
    reaction_type: str
    created_at: datetime


class AuditInteractions(BaseModel):
    audit_log_id: uuid.UUID
    comments: list[CommentRead]
    likes: list[LikeRead]
    assignments: list[AssignmentRead]


class AuditSocialStats(BaseModel):
    audit_log_id: uuid.UUID
    comments: int
    likes: int
    reactions: dict[str, int]
    assignments: int
    open_assignments: int
    escalated: bool


class UserInteractions(BaseModel):
    user_id: uuid.UUID
    comments: list[CommentRead]
    likes: list[LikeRead]
    assignments: list[AssignmentRead]

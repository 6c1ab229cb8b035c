import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .document import DocumentRead


class TemplateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    category: str = Field("general", min_length=1, max_length=50)
    content: str = Field(..., min_length=1)
    is_active: bool = True


class TemplateUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    category: str | None = Field(None, min_length=1, max_length=50)
    content: str | None = Field(None, min_length=1)
    is_active: bool | None = None


class TemplateRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    description: str | None = None
    category: str
    content: str
    is_active: bool
    placeholders: list[str] = Field(default_factory=list)
    created_by: uuid.UUID | None = None
    created_at: datetime
    updated_at: datetime


class TemplateGenerateRequest(BaseModel):
    exchange_id: uuid.UUID
    filename: str | None = Field(None, min_length=1, max_length=200)
    values: dict[str, str] = Field(default_factory=dict)


class TemplateGenerateResult(BaseModel):
    document: DocumentRead
    used_placeholders: list[str]
    missing_placeholders: list[str]

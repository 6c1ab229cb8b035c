import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class DocumentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    exchange_id: uuid.UUID
    original_filename: str
    content_type: str
    size: int
    category: str
    description: str | None = None
    pin_protected: bool
    is_template_generated: bool
    template_id: uuid.UUID | None = None
    uploaded_by: uuid.UUID | None = None
    created_at: datetime


class DocumentUpdate(BaseModel):
    category: str | None = Field(None, min_length=1, max_length=50)
    description: str | None = None
    # Empty string clears the PIN
    pin: str | None = Field(None, max_length=64)

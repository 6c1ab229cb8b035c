import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

ExchangeStatus = Literal["PENDING", "45D", "180D", "COMPLETED", "TERMINATED", "ON_HOLD"]
Priority = Literal["LOW", "MEDIUM", "HIGH", "URGENT"]
RiskLevel = Literal["LOW", "MEDIUM", "HIGH"]


class ExchangeBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    exchange_type: str = Field("LIKE_KIND", max_length=50)
    priority: Priority = "MEDIUM"
    risk_level: RiskLevel = "LOW"
    client_id: uuid.UUID | None = None
    coordinator_id: uuid.UUID | None = None
    relinquished_property_address: str | None = None
    relinquished_sale_price: Decimal | None = Field(None, ge=0)
    relinquished_closing_date: date | None = None
    exchange_value: Decimal | None = Field(None, ge=0)
    relinquished_value: Decimal | None = Field(None, ge=0)
    replacement_value: Decimal | None = Field(None, ge=0)
    replacement_properties: list[dict[str, Any]] = Field(default_factory=list)
    qi_company: str | None = Field(None, max_length=255)
    start_date: datetime | None = None
    identification_deadline: datetime | None = None
    completion_deadline: datetime | None = None
    notes: str | None = None
    client_notes: str | None = None


class ExchangeCreate(ExchangeBase):
    exchange_number: str | None = Field(None, min_length=1, max_length=50)


class ExchangeUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    exchange_type: str | None = Field(None, max_length=50)
    status: ExchangeStatus | None = None
    priority: Priority | None = None
    risk_level: RiskLevel | None = None
    client_id: uuid.UUID | None = None
    coordinator_id: uuid.UUID | None = None
    relinquished_property_address: str | None = None
    relinquished_sale_price: Decimal | None = Field(None, ge=0)
    relinquished_closing_date: date | None = None
    exchange_value: Decimal | None = Field(None, ge=0)
    relinquished_value: Decimal | None = Field(None, ge=0)
    replacement_value: Decimal | None = Field(None, ge=0)
    replacement_properties: list[dict[str, Any]] | None = None
    qi_company: str | None = Field(None, max_length=255)
    start_date: datetime | None = None
    identification_deadline: datetime | None = None
    completion_deadline: datetime | None = None
    stage_data: dict[str, Any] | None = None
    notes: str | None = None
    client_notes: str | None = None


class ExchangeRead(ExchangeBase):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    exchange_number: str
    status: str
    stage: str
    compliance_status: str
    day_45_start_date: datetime | None = None
    completion_date: datetime | None = None
    stage_data: dict[str, Any] = Field(default_factory=dict)
    stage_checklist: dict[str, bool] = Field(default_factory=dict)
    cancellation_reason: str | None = None
    last_activity_at: datetime | None = None
    created_by: uuid.UUID | None = None
    created_at: datetime
    updated_at: datetime

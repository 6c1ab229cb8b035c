import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    Text,
    func,
    true,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base
from ..utils.time import utcnow

if TYPE_CHECKING:
    from .participant import ExchangeParticipant
    from .stage_history import ExchangeStageHistory

EXCHANGE_STATUSES = ("PENDING", "45D", "180D", "COMPLETED", "TERMINATED", "ON_HOLD")
EXCHANGE_PRIORITIES = ("LOW", "MEDIUM", "HIGH", "URGENT")
COMPLIANCE_STATUSES = ("COMPLIANT", "AT_RISK", "NON_COMPLIANT", "PENDING_REVIEW")
RISK_LEVELS = ("LOW", "MEDIUM", "HIGH")


class Exchange(Base):
    __tablename__ = "exchanges"
    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', '45D', '180D', 'COMPLETED', 'TERMINATED', 'ON_HOLD')",
            name="valid_status",
        ),
        CheckConstraint(
            "priority IN ('LOW', 'MEDIUM', 'HIGH', 'URGENT')",
            name="valid_priority",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    exchange_number: Mapped[str] = mapped_column(
        String(50), unique=True, nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    exchange_type: Mapped[str] = mapped_column(
        String(50), nullable=False, default="LIKE_KIND"
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="PENDING", index=True
    )
    stage: Mapped[str] = mapped_column(
        String(50), nullable=False, default="EXCHANGE_CREATED", index=True
    )
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default="MEDIUM")
    risk_level: Mapped[str] = mapped_column(String(20), nullable=False, default="LOW")
    compliance_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="PENDING_REVIEW"
    )

    client_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), index=True
    )
    coordinator_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), index=True
    )

    relinquished_property_address: Mapped[str | None] = mapped_column(Text)
    relinquished_sale_price: Mapped[Decimal | None] = mapped_column(Numeric(15, 2))
    relinquished_closing_date: Mapped[date | None] = mapped_column(Date)
    exchange_value: Mapped[Decimal | None] = mapped_column(Numeric(15, 2))
    relinquished_value: Mapped[Decimal | None] = mapped_column(Numeric(15, 2))
    replacement_value: Mapped[Decimal | None] = mapped_column(Numeric(15, 2))
    replacement_properties: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    qi_company: Mapped[str | None] = mapped_column(String(255))

    start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    identification_deadline: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completion_deadline: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    day_45_start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completion_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Stage bookkeeping: manually confirmed checklist items and stage data
    stage_checklist: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    stage_data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    stage_changed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancellation_reason: Mapped[str | None] = mapped_column(Text)

    notes: Mapped[str | None] = mapped_column(Text)
    client_notes: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=true()
    )
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL")
    )
    last_activity_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )

    participants: Mapped[list["ExchangeParticipant"]] = relationship(
        "ExchangeParticipant", back_populates="exchange", cascade="all, delete-orphan"
    )
    stage_history: Mapped[list["ExchangeStageHistory"]] = relationship(
        "ExchangeStageHistory",
        back_populates="exchange",
        cascade="all, delete-orphan",
        order_by="ExchangeStageHistory.entered_at",
    )

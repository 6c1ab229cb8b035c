import uuid
from datetime import datetime

from pydantic import BaseModel


class DeadlineItem(BaseModel):
    exchange_id: uuid.UUID
    exchange_number: str
    name: str
    deadline_type: str
    deadline: datetime
    days_remaining: int


class DashboardSummary(BaseModel):
    role: str
    total_exchanges: int
    by_status: dict[str, int]
    by_stage: dict[str, int]
    at_risk: int
    non_compliant: int
    upcoming_deadlines: list[DeadlineItem]
    open_tasks: int
    overdue_tasks: int
    unread_notifications: int
    unread_messages: int

from collections import Counter
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from ..auth.rbac_contract import get_view_scope
from ..crud.exchange import ExchangeRepository, visibility_condition
from ..crud.notification import NotificationRepository
from ..domain.deadlines import days_remaining
from ..models.user import User
from ..schemas.dashboard import DashboardSummary, DeadlineItem
from ..utils.time import as_utc, utcnow
from .message_service import MessageService
from .task_service import TaskService

UPCOMING_WINDOW = timedelta(days=30)
CLOSED_STATUSES = frozenset({"COMPLETED", "TERMINATED"})


class DashboardService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.exchanges = ExchangeRepository(session)
        self.notifications = NotificationRepository(session)
        self.tasks = TaskService(session)
        self.messages = MessageService(session)

    async def summary(self, actor: User) -> DashboardSummary:
        now = utcnow()
        scope = get_view_scope(actor.role, "exchanges")
        exchanges = await self.exchanges.list_visible(visibility_condition(actor.id, scope))

        deadlines: list[DeadlineItem] = []
        for exchange in exchanges:
            if exchange.status in CLOSED_STATUSES:
                continue
            for deadline_type, value in (
                ("identification", exchange.identification_deadline),
                ("completion", exchange.completion_deadline),
            ):
                deadline = as_utc(value)
                if deadline is None or deadline < now or deadline - now > UPCOMING_WINDOW:
                    continue
                deadlines.append(
                    DeadlineItem(
                        exchange_id=exchange.id,
                        exchange_number=exchange.exchange_number,
                        name=exchange.name,
                        deadline_type=deadline_type,
                        deadline=deadline,
                        days_remaining=days_remaining(deadline, now) or 0,
                    )
                )
        deadlines.sort(key=lambda item: item.deadline)

        open_tasks, overdue_tasks = await self.tasks.count_for_dashboard(actor)
        return DashboardSummary(
            role=actor.role,
            total_exchanges=len(exchanges),
            by_status=dict(Counter(exchange.status for exchange in exchanges)),
            by_stage=dict(Counter(exchange.stage for exchange in exchanges)),
            at_risk=sum(1 for exchange in exchanges if exchange.compliance_status == "AT_RISK"),
            non_compliant=sum(
                1 for exchange in exchanges if exchange.compliance_status == "NON_COMPLIANT"
            ),
            upcoming_deadlines=deadlines,
            open_tasks=open_tasks,
            overdue_tasks=overdue_tasks,
            unread_notifications=await self.notifications.count_unread(actor.id),
            unread_messages=await self.messages.unread_count(actor),
        )

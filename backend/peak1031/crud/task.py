import uuid
from datetime import date

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from ..models.exchange import Exchange
from ..models.task import Task

OPEN_STATUSES = ("PENDING", "IN_PROGRESS")


class TaskRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, task_id: uuid.UUID) -> Task | None:
        return await self.session.get(Task, task_id)

    async def create(self, **values) -> Task:
        task = Task(**values)
        self.session.add(task)
        await self.session.flush()
        return task

    async def delete(self, task: Task) -> None:
        await self.session.delete(task)
        await self.session.flush()

    async def list_by_filters(
        self,
        *,
        exchange_ids: list[uuid.UUID] | None = None,
        status: str | None = None,
        priority: str | None = None,
        assigned_to: uuid.UUID | None = None,
        overdue_before: date | None = None,
        due_from: date | None = None,
        due_to: date | None = None,
        extra: ColumnElement[bool] | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Task], int]:
        conditions: list[ColumnElement[bool]] = []
        if exchange_ids is not None:
            conditions.append(Task.exchange_id.in_(exchange_ids))
        if status is not None:
            conditions.append(Task.status == status)
        if priority is not None:
            conditions.append(Task.priority == priority)
        if assigned_to is not None:
            conditions.append(Task.assigned_to == assigned_to)
        if overdue_before is not None:
            conditions.append(Task.due_date < overdue_before)
            conditions.append(Task.status.in_(OPEN_STATUSES))
        if due_from is not None:
            conditions.append(Task.due_date >= due_from)
        if due_to is not None:
            conditions.append(Task.due_date <= due_to)
        if extra is not None:
            conditions.append(extra)

        where = and_(*conditions) if conditions else None
        count_stmt = select(func.count()).select_from(Task)
        list_stmt = select(Task)
        if where is not None:
            count_stmt = count_stmt.where(where)
            list_stmt = list_stmt.where(where)

        total = await self.session.scalar(count_stmt)
        result = await self.session.execute(
            list_stmt.order_by(Task.due_date.asc().nulls_last(), Task.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), int(total or 0)

    async def list_overdue_with_exchange_status(
        self, before: date
    ) -> list[tuple[Task, str]]:
        """Open tasks due before ``before`` together with their exchange status."""
        result = await self.session.execute(
            select(Task, Exchange.status)
            .join(Exchange, Exchange.id == Task.exchange_id)
            .where(Task.status.in_(OPEN_STATUSES), Task.due_date < before)
            .order_by(Task.due_date)
        )
        return [(task, status) for task, status in result.all()]

    async def count_open_for_user(self, user_id: uuid.UUID, *, overdue_before: date | None = None) -> int:
        conditions = [Task.assigned_to == user_id, Task.status.in_(OPEN_STATUSES)]
        if overdue_before is not None:
            conditions.append(Task.due_date < overdue_before)
        return int(
            await self.session.scalar(select(func.count()).select_from(Task).where(*conditions)) or 0
        )

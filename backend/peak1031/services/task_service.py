import logging
import uuid
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession

from ..auth.rbac_contract import Role, ViewScope, get_view_scope
from ..crud.exchange import ExchangeRepository, visibility_condition
from ..crud.task import TaskRepository
from ..crud.user import UserRepository
from ..errors import NotFoundError, ValidationError
from ..models.task import Task
from ..models.user import User
from ..schemas.task import TaskCreate, TaskUpdate
from ..utils.time import today, utcnow
from .audit_service import AuditService, serialize_entity
from .context import EMPTY_CONTEXT, RequestContext
from .notification_service import NotificationService
from .permission_service import PermissionService

logger = logging.getLogger("peak1031.tasks")

TASK_FIELDS = (
    "exchange_id",
    "title",
    "status",
    "priority",
    "assigned_to",
    "due_date",
    "completed_at",
)


class TaskService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.repo = TaskRepository(session)
        self.exchanges = ExchangeRepository(session)
        self.users = UserRepository(session)
        self.permissions = PermissionService(session)
        self.audit = AuditService(session)
        self.notifications = NotificationService(session)

    async def _visible_exchange_ids(self, actor: User) -> list[uuid.UUID] | None:
        """Exchanges whose tasks the actor may list; None means unrestricted."""
        scope = get_view_scope(actor.role, "tasks")
        if scope is ViewScope.ALL:
            return None
        exchanges = await self.exchanges.list_visible(visibility_condition(actor.id, scope))
        allowed: list[uuid.UUID] = []
        for exchange in exchanges:
            access = await self.permissions.resolve_access(actor, exchange)
            if access is not None and access.has("can_view_tasks"):
                allowed.append(exchange.id)
        return allowed

    async def list_tasks(
        self,
        actor: User,
        *,
        exchange_id: uuid.UUID | None = None,
        status: str | None = None,
        priority: str | None = None,
        assigned_to: uuid.UUID | None = None,
        overdue: bool = False,
        due_from: date | None = None,
        due_to: date | None = None,
        limit: int = 50,
        offset: int = 0,
        context: RequestContext = EMPTY_CONTEXT,
    ) -> tuple[list[Task], int]:
        await self.permissions.require_permission(actor, "tasks.view", context=context)
        if exchange_id is not None:
            await self.permissions.require_exchange_permission(
                actor, exchange_id, "can_view_tasks", context=context
            )
            exchange_ids: list[uuid.UUID] | None = [exchange_id]
        else:
            exchange_ids = await self._visible_exchange_ids(actor)

        return await self.repo.list_by_filters(
            exchange_ids=exchange_ids,
            status=status,
            priority=priority,
            assigned_to=assigned_to,
            overdue_before=today() if overdue else None,
            due_from=due_from,
            due_to=due_to,
            limit=limit,
            offset=offset,
        )

    async def _load(self, task_id: uuid.UUID) -> Task:
        task = await self.repo.get_by_id(task_id)
        if task is None:
            raise NotFoundError("Task not found")
        return task

    async def get_task(
        self, task_id: uuid.UUID, actor: User, context: RequestContext = EMPTY_CONTEXT
    ) -> Task:
        task = await self._load(task_id)
        await self.permissions.require_exchange_permission(
            actor, task.exchange_id, "can_view_tasks", context=context
        )
        return task

    async def _check_assignee(self, user_id: uuid.UUID) -> User:
        assignee = await self.users.get_by_id(user_id)
        if assignee is None or not assignee.is_active:
            raise ValidationError("Assignee not found or inactive", details={"user_id": str(user_id)})
        return assignee

    async def _notify_assignee(self, task: Task, actor: User) -> None:
        await self.notifications.notify(
            [task.assigned_to],
            title="Task assigned",
            message=f"You have been assigned the task '{task.title}'",
            type="task_assigned",
            exchange_id=task.exchange_id,
            exclude=actor.id,
        )

    async def create_task(
        self, payload: TaskCreate, actor: User, context: RequestContext = EMPTY_CONTEXT
    ) -> Task:
        exchange, access = await self.permissions.require_exchange_permission(
            actor, payload.exchange_id, "can_create_tasks", context=context
        )
        if payload.assigned_to is not None and payload.assigned_to != actor.id:
            if not access.has("can_assign_tasks"):
                await self.permissions.require_exchange_permission(
                    actor, exchange.id, "can_assign_tasks", context=context
                )
            await self._check_assignee(payload.assigned_to)

        task = await self.repo.create(
            **payload.model_dump(),
            status="PENDING",
            created_by=actor.id,
            meta={},
        )
        exchange.last_activity_at = utcnow()
        await self.audit.log_create(
            "task", task.id, serialize_entity(task, TASK_FIELDS), actor=actor, context=context
        )
        if task.assigned_to is not None:
            await self._notify_assignee(task, actor)
        await self.session.commit()
        logger.info("task created id=%s exchange_id=%s actor=%s", task.id, exchange.id, actor.id)
        return task

    async def update_task(
        self,
        task_id: uuid.UUID,
        payload: TaskUpdate,
        actor: User,
        context: RequestContext = EMPTY_CONTEXT,
    ) -> Task:
        task = await self._load(task_id)
        changes = payload.model_dump(exclude_unset=True)
        is_assignee = task.assigned_to == actor.id

        # Assignees may move their own task's status without edit rights
        if not (is_assignee and set(changes) <= {"status"}):
            _, access = await self.permissions.require_exchange_permission(
                actor, task.exchange_id, "can_edit_tasks", context=context
            )
        else:
            _, access = await self.permissions.require_exchange_permission(
                actor, task.exchange_id, "can_view_tasks", context=context
            )

        reassigned = "assigned_to" in changes and changes["assigned_to"] != task.assigned_to
        if reassigned:
            if not access.has("can_assign_tasks"):
                await self.permissions.require_exchange_permission(
                    actor, task.exchange_id, "can_assign_tasks", context=context
                )
            if changes["assigned_to"] is not None:
                await self._check_assignee(changes["assigned_to"])

        before = serialize_entity(task, TASK_FIELDS)
        for field, value in changes.items():
            setattr(task, field, value)
        if "status" in changes:
            if task.status == "COMPLETED" and task.completed_at is None:
                task.completed_at = utcnow()
            elif task.status != "COMPLETED":
                task.completed_at = None

        await self.session.flush()
        await self.audit.log_update(
            "task",
            task.id,
            before,
            serialize_entity(task, TASK_FIELDS),
            actor=actor,
            context=context,
        )
        if reassigned and task.assigned_to is not None:
            await self._notify_assignee(task, actor)
        await self.session.commit()
        return task

    async def complete_task(
        self, task_id: uuid.UUID, actor: User, context: RequestContext = EMPTY_CONTEXT
    ) -> Task:
        return await self.update_task(task_id, TaskUpdate(status="COMPLETED"), actor, context)

    async def delete_task(
        self, task_id: uuid.UUID, actor: User, context: RequestContext = EMPTY_CONTEXT
    ) -> None:
        task = await self._load(task_id)
        await self.permissions.require_permission(
            actor, "tasks.delete", resource=str(task_id), context=context
        )
        await self.permissions.require_exchange_permission(
            actor, task.exchange_id, "can_edit_tasks", context=context
        )
        before = serialize_entity(task, TASK_FIELDS)
        await self.repo.delete(task)
        await self.audit.log_delete("task", task_id, before, actor=actor, context=context)
        await self.session.commit()
        logger.info("task deleted id=%s actor=%s", task_id, actor.id)

    async def count_for_dashboard(self, actor: User) -> tuple[int, int]:
        """(open, overdue) tasks assigned to the actor."""
        if actor.role == Role.THIRD_PARTY.value:
            return 0, 0
        open_count = await self.repo.count_open_for_user(actor.id)
        overdue_count = await self.repo.count_open_for_user(actor.id, overdue_before=today())
        return open_count, overdue_count

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..dependencies import get_current_user, get_db, get_request_context, require_capability
from ..models.user import User
from ..schemas.common import Page, page_of
from ..schemas.task import (
    RolloverRequest,
    RolloverResult,
    TaskCreate,
    TaskDraft,
    TaskRead,
    TaskStatus,
    TaskUpdate,
)
from ..services.context import RequestContext
from ..services.task_rollover import TaskRolloverService
from ..services.task_service import TaskService

router = APIRouter(prefix="/tasks", tags=["tasks"])
exchange_router = APIRouter(prefix="/exchanges/{exchange_id}/tasks", tags=["tasks"])


@router.get("", response_model=Page[TaskRead])
async def list_tasks(
    exchange_id: UUID | None = Query(None, description="Filter by exchange"),
    status_filter: TaskStatus | None = Query(None, alias="status", description="Filter by status"),
    priority: str | None = Query(None, description="Filter by priority"),
    assigned_to: UUID | None = Query(None, description="Filter by assignee"),
    overdue: bool = Query(False, description="Only open tasks past their due date"),
    due_from: date | None = Query(None),
    due_to: date | None = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
) -> Page[TaskRead]:
    items, total = await TaskService(db).list_tasks(
        current_user,
        exchange_id=exchange_id,
        status=status_filter,
        priority=priority,
        assigned_to=assigned_to,
        overdue=overdue,
        due_from=due_from,
        due_to=due_to,
        limit=limit,
        offset=offset,
        context=context,
    )
    return page_of(TaskRead, items, total, limit, offset)


@router.post("", response_model=TaskRead, status_code=status.HTTP_201_CREATED)
async def create_task(
    payload: TaskCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    return await TaskService(db).create_task(payload, current_user, context)


@router.post("/rollover", response_model=RolloverResult)
async def rollover_tasks(
    payload: RolloverRequest | None = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_capability("system", "run_jobs")),
) -> RolloverResult:
    """Move overdue open tasks to today. ``dry_run`` reports without writing."""
    return await TaskRolloverService(db).run(
        dry_run=payload.dry_run if payload else False, actor=current_user
    )


@router.get("/{task_id}", response_model=TaskRead)
async def get_task(
    task_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    return await TaskService(db).get_task(task_id, current_user, context)


@router.put("/{task_id}", response_model=TaskRead)
async def update_task(
    task_id: UUID,
    payload: TaskUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    return await TaskService(db).update_task(task_id, payload, current_user, context)


@router.post("/{task_id}/complete", response_model=TaskRead)
async def complete_task(
    task_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    return await TaskService(db).complete_task(task_id, current_user, context)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(
    task_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
) -> Response:
    await TaskService(db).delete_task(task_id, current_user, context)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@exchange_router.get("", response_model=Page[TaskRead])
async def list_exchange_tasks(
    exchange_id: UUID,
    status_filter: TaskStatus | None = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
) -> Page[TaskRead]:
    items, total = await TaskService(db).list_tasks(
        current_user,
        exchange_id=exchange_id,
        status=status_filter,
        limit=limit,
        offset=offset,
        context=context,
    )
    return page_of(TaskRead, items, total, limit, offset)


@exchange_router.post("", response_model=TaskRead, status_code=status.HTTP_201_CREATED)
async def create_exchange_task(
    exchange_id: UUID,
    payload: TaskDraft,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    task = TaskCreate(exchange_id=exchange_id, **payload.model_dump())
    return await TaskService(db).create_task(task, current_user, context)

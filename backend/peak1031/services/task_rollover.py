"""
Task rollover: moves overdue open tasks to today.

Tasks on exchanges that are already ``COMPLETED`` or ``TERMINATED`` are
skipped. Every move is appended to ``metadata.rollover_history`` on the task
so the original due date is never lost. Only one rollover runs at a time per
process; the background scheduler additionally holds a Redis lock so only
one worker runs it.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from ..crud.task import TaskRepository
from ..models.user import User
from ..schemas.task import RolloverEntry, RolloverResult, RolloverSkip
from ..utils.time import utcnow
from .audit_service import AuditService

logger = logging.getLogger("peak1031.tasks.rollover")

CLOSED_EXCHANGE_STATUSES = frozenset({"COMPLETED", "TERMINATED"})

_run_lock = asyncio.Lock()


def is_rollover_running() -> bool:
    return _run_lock.locked()


class TaskRolloverService:
    def __init__(
        self,
        session: AsyncSession,
        *,
        now_provider: Callable[[], datetime] | None = None,
    ) -> None:
        self._session = session
        self._tasks = TaskRepository(session)
        self._audit = AuditService(session)
        self._now_provider = now_provider or utcnow

    async def run(self, *, dry_run: bool = False, actor: User | None = None) -> RolloverResult:
        if is_rollover_running():
            logger.info("task rollover skipped: already in progress")
            return RolloverResult(
                success=False, message="Task rollover already in progress", dry_run=dry_run
            )
        async with _run_lock:
            return await self._rollover(dry_run=dry_run, actor=actor)

    async def _rollover(self, *, dry_run: bool, actor: User | None) -> RolloverResult:
        now = self._now_provider()
        target: date = now.date()
        candidates = await self._tasks.list_overdue_with_exchange_status(target)
        result = RolloverResult(success=True, dry_run=dry_run, tasks_checked=len(candidates))
        rolled_by = str(actor.id) if actor else "system"

        for task, exchange_status in candidates:
            if exchange_status in CLOSED_EXCHANGE_STATUSES:
                result.skipped.append(
                    RolloverSkip(task_id=task.id, reason=f"Exchange is {exchange_status}")
                )
                continue

            original = task.due_date
            entry = RolloverEntry(
                task_id=task.id,
                title=task.title,
                original_due_date=original,
                new_due_date=target,
                days_overdue=(target - original).days,
            )
            result.rolled_over.append(entry)
            if dry_run:
                continue

            meta = dict(task.meta or {})
            history = list(meta.get("rollover_history", []))
            history.append(
                {
                    "original_due_date": original.isoformat(),
                    "new_due_date": target.isoformat(),
                    "rolled_over_at": now.isoformat(),
                    "days_overdue": entry.days_overdue,
                    "rolled_over_by": rolled_by,
                }
            )
            meta["rollover_history"] = history
            task.meta = meta
            task.due_date = target

        result.tasks_rolled_over = len(result.rolled_over)
        result.tasks_skipped = len(result.skipped)

        if dry_run:
            result.message = f"Dry run: {result.tasks_rolled_over} task(s) would be rolled over"
            return result

        if result.rolled_over:
            await self._audit.log(
                action="task.rollover",
                entity_type="task",
                entity_id="bulk",
                actor=actor,
                actor_type="user" if actor else "system",
                after={
                    "target_date": target.isoformat(),
                    "tasks_rolled_over": result.tasks_rolled_over,
                    "tasks_skipped": result.tasks_skipped,
                },
            )
            await self._session.commit()
        result.message = f"Rolled over {result.tasks_rolled_over} task(s)"
        logger.info(
            "task rollover finished checked=%d rolled_over=%d skipped=%d",
            result.tasks_checked,
            result.tasks_rolled_over,
            result.tasks_skipped,
        )
        return result

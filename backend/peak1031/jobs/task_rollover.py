"""
Periodic maintenance loop: task rollover plus stage timer reminders.

Only the worker holding the Redis lock runs the loop; other workers log the
denial and stay idle. Each run is best effort: a failed run is logged and
the next interval tries again.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import suppress
from typing import AsyncContextManager, Callable

from redis.asyncio import Redis as AsyncRedis
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..database import AsyncSessionLocal
from ..infra.redis import DistributedLock, get_async_redis_client
from ..services.stage_service import StageService
from ..services.task_rollover import TaskRolloverService

SCHEDULER_LOCK_KEY = "task_rollover_scheduler"
SCHEDULER_LOCK_TTL = 90  # seconds

logger = logging.getLogger("peak1031.jobs.task_rollover")


class TaskRolloverScheduler:
    def __init__(
        self,
        *,
        session_factory: Callable[[], AsyncContextManager[AsyncSession]] = AsyncSessionLocal,
        redis_client: AsyncRedis | None = None,
        interval_minutes: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._redis = redis_client
        self._interval_minutes = interval_minutes
        self._task: asyncio.Task[None] | None = None
        self._lock: DistributedLock | None = None
        self._lock_extend_task: asyncio.Task[None] | None = None
        self._should_stop = False
        self._worker_id = str(uuid.uuid4())[:8]

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def interval_minutes(self) -> int:
        return self._interval_minutes or settings.task_rollover_interval_minutes

    async def _ensure_redis(self) -> AsyncRedis:
        if self._redis is None:
            self._redis = get_async_redis_client()
            await self._redis.ping()
        return self._redis

    async def start(self) -> None:
        if self.is_running:
            return
        self._should_stop = False

        try:
            redis = await self._ensure_redis()
            self._lock = DistributedLock(redis, SCHEDULER_LOCK_KEY, ttl_seconds=SCHEDULER_LOCK_TTL)
            if not await self._lock.acquire():
                logger.info(
                    "[SCHEDULER] lock_denied lock_key=%s reason=held_by_another_worker worker_id=%s",
                    SCHEDULER_LOCK_KEY,
                    self._worker_id,
                )
                self._lock = None
                return
        except (RedisError, ValueError) as exc:
            logger.error(
                "[SCHEDULER] start_failed lock_key=%s reason=redis_unavailable worker_id=%s error=%s",
                SCHEDULER_LOCK_KEY,
                self._worker_id,
                exc,
            )
            self._lock = None
            return

        logger.info(
            "[SCHEDULER] lock_acquired lock_key=%s worker_id=%s ttl=%ds interval=%dm",
            SCHEDULER_LOCK_KEY,
            self._worker_id,
            SCHEDULER_LOCK_TTL,
            self.interval_minutes,
        )
        self._task = asyncio.create_task(self._loop())
        self._lock_extend_task = asyncio.create_task(self._extend_lock_loop())

    async def stop(self) -> None:
        self._should_stop = True

        for task in (self._lock_extend_task, self._task):
            if task is None:
                continue
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        self._lock_extend_task = None
        self._task = None

        if self._lock is not None:
            await self._lock.release()
            logger.info(
                "[SCHEDULER] stopped lock_key=%s reason=graceful worker_id=%s",
                SCHEDULER_LOCK_KEY,
                self._worker_id,
            )
            self._lock = None

    async def run_once(self) -> dict[str, object]:
        try:
            async with self._session_factory() as session:
                result = await TaskRolloverService(session).run()
            async with self._session_factory() as session:
                reminders = await StageService(session).process_timers()
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "[SCHEDULER] run_failed worker_id=%s", self._worker_id, exc_info=exc
            )
            return {"status": "failed", "reason": "execution_error"}

        logger.info(
            "[SCHEDULER] run_completed worker_id=%s rolled_over=%d skipped=%d reminders=%d",
            self._worker_id,
            result.tasks_rolled_over,
            result.tasks_skipped,
            reminders,
        )
        return {
            "status": "ok" if result.success else "skipped",
            "tasks_rolled_over": result.tasks_rolled_over,
            "tasks_skipped": result.tasks_skipped,
            "reminders_sent": reminders,
        }

    async def _extend_lock_loop(self) -> None:
        try:
            while not self._should_stop and self._lock is not None:
                await asyncio.sleep(SCHEDULER_LOCK_TTL / 2)
                if self._should_stop:
                    break
                if not await self._lock.extend():
                    logger.error(
                        "[SCHEDULER] ttl_extend_failed lock_key=%s reason=lock_lost worker_id=%s",
                        SCHEDULER_LOCK_KEY,
                        self._worker_id,
                    )
                    self._should_stop = True
                    break
        except asyncio.CancelledError:
            return

    async def _loop(self) -> None:
        while not self._should_stop:
            await self.run_once()
            # Sleep in one-second steps so stop() is picked up promptly
            for _ in range(self.interval_minutes * 60):
                if self._should_stop:
                    break
                await asyncio.sleep(1)


task_rollover_scheduler = TaskRolloverScheduler()

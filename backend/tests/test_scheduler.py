"""Tests for the maintenance scheduler: lock handling and a full run."""
from __future__ import annotations

import uuid
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from peak1031.infra.redis import DistributedLock
from peak1031.jobs.task_rollover import SCHEDULER_LOCK_TTL, TaskRolloverScheduler
from peak1031.models.exchange import Exchange
from peak1031.utils.time import utcnow
from tests.api_helpers import exchange_payload

pytestmark = pytest.mark.anyio


def broken_factory():
    raise RuntimeError("database unavailable")


def fake_redis(*, set_result=True) -> AsyncMock:
    redis = AsyncMock()
    redis.set.return_value = set_result
    redis.delete.return_value = 1
    redis.expire.return_value = True
    return redis


async def test_lock_acquire_release_and_extend() -> None:
    redis = fake_redis()
    lock = DistributedLock(redis, "jobs", ttl_seconds=30)

    assert await lock.extend() is False
    assert await lock.acquire() is True
    redis.set.assert_awaited_once_with("lock:jobs", "1", nx=True, ex=30)
    assert await lock.extend() is True
    assert await lock.release() is True
    assert lock.acquired is False


async def test_lock_treats_redis_errors_as_not_acquired() -> None:
    redis = fake_redis()
    redis.set.side_effect = RedisConnectionError("down")

    assert await DistributedLock(redis, "jobs").acquire() is False


async def test_scheduler_stays_idle_without_lock() -> None:
    redis = fake_redis(set_result=None)
    scheduler = TaskRolloverScheduler(redis_client=redis, interval_minutes=1)

    await scheduler.start()

    assert scheduler.is_running is False
    redis.set.assert_awaited_once()
    await scheduler.stop()
    redis.delete.assert_not_awaited()


async def test_scheduler_runs_and_releases_lock() -> None:
    redis = fake_redis()
    scheduler = TaskRolloverScheduler(
        session_factory=broken_factory, redis_client=redis, interval_minutes=60
    )

    await scheduler.start()
    assert scheduler.is_running is True
    await scheduler.stop()

    assert scheduler.is_running is False
    redis.delete.assert_awaited_once_with("lock:task_rollover_scheduler")
    assert SCHEDULER_LOCK_TTL > 0


async def test_run_once_reports_failure() -> None:
    scheduler = TaskRolloverScheduler(session_factory=broken_factory, redis_client=fake_redis())

    assert await scheduler.run_once() == {"status": "failed", "reason": "execution_error"}


async def test_run_once_sends_stage_reminders_once(client, make_user, session_factory) -> None:
    _, coordinator_headers = await make_user("coordinator")
    client_user, client_headers = await make_user("client")
    created = await client.post(
        "/api/exchanges",
        json=exchange_payload(client_id=str(client_user.id)),
        headers=coordinator_headers,
    )
    exchange_id = created.json()["id"]
    await client.post(f"/api/exchanges/{exchange_id}/stage/advance", headers=coordinator_headers)
    async with session_factory() as session:
        exchange = await session.get(Exchange, uuid.UUID(exchange_id))
        exchange.stage_changed_at = utcnow() - timedelta(days=2)
        await session.commit()

    scheduler = TaskRolloverScheduler(session_factory=session_factory, redis_client=fake_redis())
    first = await scheduler.run_once()
    second = await scheduler.run_once()

    assert first["status"] == "ok"
    assert first["reminders_sent"] == 1
    assert second["reminders_sent"] == 0
    notifications = (await client.get("/api/notifications", headers=client_headers)).json()
    assert any(item["type"] == "deadline_reminder" for item in notifications["items"])

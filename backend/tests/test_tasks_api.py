from datetime import timedelta

import pytest

from peak1031.services import task_rollover
from peak1031.utils.time import today
from tests.api_helpers import error_code, exchange_payload

pytestmark = pytest.mark.anyio


@pytest.fixture
async def exchange(client, make_user):
    coordinator, coordinator_headers = await make_user("coordinator")
    client_user, client_headers = await make_user("client")
    response = await client.post(
        "/api/exchanges",
        json=exchange_payload(client_id=str(client_user.id)),
        headers=coordinator_headers,
    )
    return {
        "id": response.json()["id"],
        "coordinator": coordinator,
        "coordinator_headers": coordinator_headers,
        "client": client_user,
        "client_headers": client_headers,
    }


async def create_task(client, exchange, **values):
    body = {"title": "Collect closing statement", **values}
    response = await client.post(
        f"/api/exchanges/{exchange['id']}/tasks",
        json=body,
        headers=exchange["coordinator_headers"],
    )
    assert response.status_code == 201, response.text
    return response.json()


async def test_create_and_list_exchange_tasks(client, exchange) -> None:
    task = await create_task(client, exchange, priority="HIGH")

    assert task["status"] == "PENDING"
    assert task["priority"] == "HIGH"
    assert task["created_by"] == str(exchange["coordinator"].id)

    response = await client.get(
        f"/api/exchanges/{exchange['id']}/tasks", headers=exchange["client_headers"]
    )
    page = response.json()
    assert page["total"] == 1
    assert page["items"][0]["id"] == task["id"]


async def test_assignment_notifies_assignee(client, exchange) -> None:
    await create_task(client, exchange, assigned_to=str(exchange["client"].id))

    response = await client.get("/api/notifications", headers=exchange["client_headers"])

    titles = [item["title"] for item in response.json()["items"]]
    assert "Task assigned" in titles


async def test_unknown_assignee_is_rejected(client, exchange) -> None:
    response = await client.post(
        f"/api/exchanges/{exchange['id']}/tasks",
        json={"title": "Orphan", "assigned_to": "00000000-0000-0000-0000-000000000001"},
        headers=exchange["coordinator_headers"],
    )

    assert response.status_code == 400
    assert error_code(response) == "VALIDATION_ERROR"


async def test_complete_sets_completed_at_and_reopen_clears_it(client, exchange) -> None:
    task = await create_task(client, exchange, assigned_to=str(exchange["client"].id))

    done = await client.post(
        f"/api/tasks/{task['id']}/complete", headers=exchange["client_headers"]
    )
    assert done.status_code == 200
    assert done.json()["status"] == "COMPLETED"
    assert done.json()["completed_at"] is not None

    reopened = await client.put(
        f"/api/tasks/{task['id']}",
        json={"status": "IN_PROGRESS"},
        headers=exchange["coordinator_headers"],
    )
    assert reopened.json()["completed_at"] is None


async def test_outsider_cannot_read_task(client, make_user, exchange) -> None:
    task = await create_task(client, exchange)
    _, outsider_headers = await make_user("client")

    response = await client.get(f"/api/tasks/{task['id']}", headers=outsider_headers)

    assert response.status_code == 403
    assert error_code(response) == "EXCHANGE_ACCESS_DENIED"


async def test_client_cannot_delete_task(client, exchange) -> None:
    task = await create_task(client, exchange)

    response = await client.delete(f"/api/tasks/{task['id']}", headers=exchange["client_headers"])
    assert response.status_code == 403

    deleted = await client.delete(
        f"/api/tasks/{task['id']}", headers=exchange["coordinator_headers"]
    )
    assert deleted.status_code == 204
    missing = await client.get(f"/api/tasks/{task['id']}", headers=exchange["coordinator_headers"])
    assert missing.status_code == 404


async def test_overdue_filter(client, exchange) -> None:
    past = (today() - timedelta(days=3)).isoformat()
    future = (today() + timedelta(days=3)).isoformat()
    late = await create_task(client, exchange, title="Late", due_date=past)
    await create_task(client, exchange, title="Upcoming", due_date=future)

    response = await client.get(
        "/api/tasks", params={"overdue": "true"}, headers=exchange["coordinator_headers"]
    )

    assert [item["id"] for item in response.json()["items"]] == [late["id"]]


async def test_rollover_requires_run_jobs(client, exchange) -> None:
    response = await client.post("/api/tasks/rollover", headers=exchange["coordinator_headers"])

    assert response.status_code == 403
    assert error_code(response) == "PERMISSION_DENIED"


async def test_rollover_dry_run_then_apply(client, make_user, exchange) -> None:
    _, admin_headers = await make_user("admin")
    original = today() - timedelta(days=5)
    task = await create_task(client, exchange, title="Late", due_date=original.isoformat())

    preview = await client.post(
        "/api/tasks/rollover", json={"dry_run": True}, headers=admin_headers
    )
    body = preview.json()
    assert body["dry_run"] is True
    assert body["tasks_rolled_over"] == 1
    assert body["rolled_over"][0]["days_overdue"] == 5
    unchanged = await client.get(f"/api/tasks/{task['id']}", headers=admin_headers)
    assert unchanged.json()["due_date"] == original.isoformat()

    applied = await client.post("/api/tasks/rollover", headers=admin_headers)
    assert applied.json()["tasks_rolled_over"] == 1

    moved = (await client.get(f"/api/tasks/{task['id']}", headers=admin_headers)).json()
    assert moved["due_date"] == today().isoformat()
    history = moved["metadata"]["rollover_history"]
    assert history[0]["original_due_date"] == original.isoformat()


async def test_rollover_skips_closed_exchanges(client, make_user, exchange) -> None:
    _, admin_headers = await make_user("admin")
    await create_task(
        client, exchange, title="Late", due_date=(today() - timedelta(days=2)).isoformat()
    )
    await client.post(
        f"/api/exchanges/{exchange['id']}/stage/cancel",
        json={"reason": "Deal fell through"},
        headers=exchange["coordinator_headers"],
    )

    response = await client.post("/api/tasks/rollover", headers=admin_headers)

    body = response.json()
    assert body["tasks_rolled_over"] == 0
    assert body["tasks_skipped"] == 1
    assert body["skipped"][0]["reason"] == "Exchange is TERMINATED"


async def test_concurrent_rollover_reports_in_progress(client, make_user, exchange) -> None:
    _, admin_headers = await make_user("admin")
    original = today() - timedelta(days=3)
    task = await create_task(client, exchange, title="Late", due_date=original.isoformat())

    async with task_rollover._run_lock:
        response = await client.post("/api/tasks/rollover", headers=admin_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "Task rollover already in progress"
    assert body["tasks_rolled_over"] == 0
    untouched = await client.get(f"/api/tasks/{task['id']}", headers=admin_headers)
    assert untouched.json()["due_date"] == original.isoformat()

    retried = await client.post("/api/tasks/rollover", headers=admin_headers)
    assert retried.json()["success"] is True
    assert retried.json()["tasks_rolled_over"] == 1

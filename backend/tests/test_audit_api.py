import pytest

from tests.api_helpers import error_code, exchange_payload

pytestmark = pytest.mark.anyio


@pytest.fixture
async def audited(client, make_user):
    admin, admin_headers = await make_user("admin")
    coordinator, coordinator_headers = await make_user("coordinator")
    client_user, client_headers = await make_user("client")
    exchange = (
        await client.post(
            "/api/exchanges",
            json=exchange_payload(client_id=str(client_user.id)),
            headers=coordinator_headers,
        )
    ).json()
    logs = await client.get(
        "/api/audit-logs", params={"action": "exchange.create"}, headers=admin_headers
    )
    return {
        "log": logs.json()["items"][0],
        "exchange": exchange,
        "admin": admin,
        "admin_headers": admin_headers,
        "coordinator": coordinator,
        "coordinator_headers": coordinator_headers,
        "client_headers": client_headers,
    }


async def test_exchange_creation_is_audited(audited) -> None:
    entry = audited["log"]

    assert entry["entity_type"] == "exchange"
    assert entry["entity_id"] == audited["exchange"]["id"]
    assert entry["actor_id"] == str(audited["coordinator"].id)
    assert entry["after"]["name"] == "Maple Street Exchange"


async def test_clients_cannot_read_audit_logs(client, audited) -> None:
    response = await client.get("/api/audit-logs", headers=audited["client_headers"])

    assert response.status_code == 403
    assert error_code(response) == "PERMISSION_DENIED"


async def test_stats_and_actions(client, audited) -> None:
    stats = (await client.get("/api/audit-logs/stats", headers=audited["admin_headers"])).json()
    actions = (await client.get("/api/audit-logs/actions", headers=audited["admin_headers"])).json()

    assert stats["total"] >= 1
    assert stats["last_24h"] == stats["total"]
    assert stats["by_entity_type"]["exchange"] >= 1
    assert "exchange.create" in actions


async def test_mention_creates_task_and_notification(client, audited) -> None:
    log_id = audited["log"]["id"]

    response = await client.post(
        f"/api/audit-social/{log_id}/comments",
        json={"content": "Please double check the sale price", "mentions": [str(audited["coordinator"].id)]},
        headers=audited["admin_headers"],
    )

    assert response.status_code == 201
    assert response.json()["mentions"] == [str(audited["coordinator"].id)]
    tasks = await client.get(
        f"/api/exchanges/{audited['exchange']['id']}/tasks",
        headers=audited["coordinator_headers"],
    )
    task = tasks.json()["items"][0]
    assert task["assigned_to"] == str(audited["coordinator"].id)
    assert task["metadata"]["source"] == "audit_mention"
    notifications = await client.get("/api/notifications", headers=audited["coordinator_headers"])
    assert any(item["type"] == "mention" for item in notifications.json()["items"])


async def test_only_author_edits_comment(client, make_user, audited) -> None:
    log_id = audited["log"]["id"]
    comment = (
        await client.post(
            f"/api/audit-social/{log_id}/comments",
            json={"content": "first"},
            headers=audited["coordinator_headers"],
        )
    ).json()
    _, other_headers = await make_user("coordinator")

    denied = await client.put(
        f"/api/audit-social/comments/{comment['id']}",
        json={"content": "hijacked"},
        headers=other_headers,
    )
    assert denied.status_code == 403

    edited = await client.put(
        f"/api/audit-social/comments/{comment['id']}",
        json={"content": "second"},
        headers=audited["coordinator_headers"],
    )
    assert edited.json()["is_edited"] is True
    assert edited.json()["content"] == "second"


async def test_reactions_toggle(client, audited) -> None:
    url = f"/api/audit-social/{audited['log']['id']}/like"

    liked = (await client.post(url, headers=audited["admin_headers"])).json()
    assert liked == {"liked": True, "reaction_type": "like", "reactions": {"like": 1}}

    switched = (
        await client.post(url, json={"reaction_type": "concern"}, headers=audited["admin_headers"])
    ).json()
    assert switched["reactions"] == {"concern": 1}

    removed = (
        await client.post(url, json={"reaction_type": "concern"}, headers=audited["admin_headers"])
    ).json()
    assert removed["liked"] is False
    assert removed["reactions"] == {}


async def test_escalated_assignment(client, audited) -> None:
    log_id = audited["log"]["id"]

    response = await client.post(
        f"/api/audit-social/{log_id}/assign",
        json={"assigned_to": str(audited["coordinator"].id), "escalate": True, "priority": "LOW"},
        headers=audited["admin_headers"],
    )

    assignment = response.json()
    assert response.status_code == 201
    assert assignment["priority"] == "URGENT"
    assert assignment["escalated"] is True

    resolved = await client.put(
        f"/api/audit-social/assignments/{assignment['id']}",
        json={"status": "resolved"},
        headers=audited["coordinator_headers"],
    )
    assert resolved.json()["status"] == "resolved"

    stats = (await client.get(f"/api/audit-social/{log_id}/stats", headers=audited["admin_headers"])).json()
    assert stats["assignments"] == 1
    assert stats["open_assignments"] == 0
    assert stats["escalated"] is True


async def test_clients_cannot_assign(client, audited) -> None:
    response = await client.post(
        f"/api/audit-social/{audited['log']['id']}/assign",
        json={"assigned_to": str(audited["coordinator"].id)},
        headers=audited["client_headers"],
    )

    assert response.status_code == 403

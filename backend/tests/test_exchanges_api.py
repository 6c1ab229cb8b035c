from datetime import datetime, timezone

import pytest
from sqlalchemy import select

from peak1031.models import AuditLog
from tests.api_helpers import error_code, exchange_payload

pytestmark = pytest.mark.anyio


@pytest.fixture
async def parties(make_user):
    admin = await make_user("admin")
    coordinator = await make_user("coordinator")
    client_user = await make_user("client")
    return admin, coordinator, client_user


async def create_exchange(client, headers, **values):
    response = await client.post("/api/exchanges", json=exchange_payload(**values), headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


async def test_coordinator_creates_exchange_with_deadlines(client, parties) -> None:
    _, (coordinator, coordinator_headers), (client_user, _) = parties

    body = await create_exchange(
        client,
        coordinator_headers,
        client_id=str(client_user.id),
        start_date="2026-01-01T00:00:00Z",
    )

    assert body["exchange_number"] == f"MAN-{datetime.now(timezone.utc).year}-0001"
    assert body["stage"] == "EXCHANGE_CREATED"
    assert body["status"] == "PENDING"
    assert body["coordinator_id"] == str(coordinator.id)
    assert body["identification_deadline"].startswith("2026-02-15")
    assert body["completion_deadline"].startswith("2026-06-30")


async def test_duplicate_exchange_number_conflicts(client, parties) -> None:
    (_, admin_headers), _, _ = parties
    await create_exchange(client, admin_headers, exchange_number="EX-100")

    response = await client.post(
        "/api/exchanges", json=exchange_payload(exchange_number="EX-100"), headers=admin_headers
    )

    assert response.status_code == 409
    assert error_code(response) == "CONFLICT_ERROR"


async def test_generated_numbers_skip_past_manual_ones(client, parties) -> None:
    (_, admin_headers), _, _ = parties
    base = f"MAN-{datetime.now(timezone.utc).year}-"
    await create_exchange(client, admin_headers, exchange_number=f"{base}0002")

    first = await create_exchange(client, admin_headers)
    second = await create_exchange(client, admin_headers)

    assert first["exchange_number"] == f"{base}0003"
    assert second["exchange_number"] == f"{base}0004"


async def test_client_party_must_have_client_role(client, parties) -> None:
    (_, admin_headers), (coordinator, _), _ = parties

    response = await client.post(
        "/api/exchanges",
        json=exchange_payload(client_id=str(coordinator.id)),
        headers=admin_headers,
    )

    assert response.status_code == 400
    assert error_code(response) == "VALIDATION_ERROR"


async def test_client_cannot_create_and_denial_is_audited(
    client, parties, session_factory
) -> None:
    _, _, (client_user, client_headers) = parties

    response = await client.post("/api/exchanges", json=exchange_payload(), headers=client_headers)

    assert response.status_code == 403
    assert error_code(response) == "PERMISSION_DENIED"
    async with session_factory() as session:
        logs = (
            await session.execute(
                select(AuditLog).where(AuditLog.action == "security.permission_denied")
            )
        ).scalars().all()
    assert [log.entity_id for log in logs] == ["exchanges.create"]
    assert logs[0].actor_id == client_user.id


async def test_visibility_follows_role_scope(client, parties, make_user) -> None:
    _, (_, coordinator_headers), (client_user, client_headers) = parties
    _, other_client_headers = await make_user("client")
    exchange = await create_exchange(client, coordinator_headers, client_id=str(client_user.id))

    mine = await client.get("/api/exchanges", headers=client_headers)
    theirs = await client.get("/api/exchanges", headers=other_client_headers)

    assert mine.json()["total"] == 1
    assert mine.json()["items"][0]["id"] == exchange["id"]
    assert theirs.json()["total"] == 0

    response = await client.get(f"/api/exchanges/{exchange['id']}", headers=other_client_headers)
    assert response.status_code == 403
    assert error_code(response) == "EXCHANGE_ACCESS_DENIED"


async def test_list_filters_and_pagination(client, parties) -> None:
    (_, admin_headers), _, _ = parties
    for index in range(3):
        await create_exchange(client, admin_headers, name=f"Exchange {index}", priority="HIGH")
    await create_exchange(client, admin_headers, name="Quiet one", priority="LOW")

    high = await client.get(
        "/api/exchanges", params={"priority": "HIGH", "limit": 2}, headers=admin_headers
    )
    search = await client.get("/api/exchanges", params={"search": "quiet"}, headers=admin_headers)

    assert high.json()["total"] == 3
    assert len(high.json()["items"]) == 2
    assert [item["name"] for item in search.json()["items"]] == ["Quiet one"]


async def test_participant_access_levels(client, parties, make_user) -> None:
    _, (_, coordinator_headers), _ = parties
    attorney, attorney_headers = await make_user("third_party")
    exchange = await create_exchange(client, coordinator_headers)
    url = f"/api/exchanges/{exchange['id']}"

    assert (await client.get(url, headers=attorney_headers)).status_code == 403

    added = await client.post(
        f"{url}/participants",
        json={"user_id": str(attorney.id), "role": "third_party", "access_level": "read"},
        headers=coordinator_headers,
    )
    assert added.status_code == 201

    assert (await client.get(url, headers=attorney_headers)).status_code == 200
    permissions = (await client.get(f"{url}/permissions", headers=attorney_headers)).json()
    assert permissions["access_level"] == "read"
    assert "documents" in permissions["tabs"]

    update = await client.put(url, json={"name": "Renamed"}, headers=attorney_headers)
    assert update.status_code == 403
    assert error_code(update) == "EXCHANGE_PERMISSION_DENIED"

    duplicate = await client.post(
        f"{url}/participants",
        json={"user_id": str(attorney.id)},
        headers=coordinator_headers,
    )
    assert duplicate.status_code == 409


async def test_permission_overrides(client, parties, make_user) -> None:
    _, (_, coordinator_headers), _ = parties
    agent, agent_headers = await make_user("agency")
    exchange = await create_exchange(client, coordinator_headers)
    url = f"/api/exchanges/{exchange['id']}"
    await client.post(
        f"{url}/participants",
        json={"user_id": str(agent.id), "role": "agency"},
        headers=coordinator_headers,
    )

    bad = await client.put(
        f"{url}/permissions/{agent.id}",
        json={"permissions": {"can_fly": True}},
        headers=coordinator_headers,
    )
    assert bad.status_code == 400

    granted = await client.put(
        f"{url}/permissions/{agent.id}",
        json={"permissions": {"can_edit": True}},
        headers=coordinator_headers,
    )
    assert granted.status_code == 200
    assert granted.json()["overrides"] == {"can_edit": True}

    update = await client.put(url, json={"notes": "from agency"}, headers=agent_headers)
    assert update.status_code == 200
    assert update.json()["notes"] == "from agency"

    # checklist data stays behind the timeline permission
    flags = await client.put(
        url, json={"stage_data": {"client_registered": True}}, headers=agent_headers
    )
    assert flags.status_code == 403
    assert flags.json()["error"]["details"]["required_permission"] == "can_edit_timeline"


async def test_workflow_stage_data_keys_are_read_only(client, parties) -> None:
    _, (_, coordinator_headers), _ = parties
    exchange = await create_exchange(client, coordinator_headers)
    url = f"/api/exchanges/{exchange['id']}"

    response = await client.put(
        url,
        json={"stage_data": {"reminders_sent": [], "actions_run": [], "agreement_signed": True}},
        headers=coordinator_headers,
    )

    assert response.status_code == 400
    assert error_code(response) == "VALIDATION_ERROR"
    assert response.json()["error"]["details"]["reserved"] == ["actions_run", "reminders_sent"]
    stored = (await client.get(url, headers=coordinator_headers)).json()
    assert "agreement_signed" not in stored["stage_data"]
    assert [entry["action"] for entry in stored["stage_data"]["actions_run"]] == ["send_welcome"]


async def test_delete_requires_admin(client, parties) -> None:
    (_, admin_headers), (_, coordinator_headers), _ = parties
    exchange = await create_exchange(client, coordinator_headers)
    url = f"/api/exchanges/{exchange['id']}"

    assert (await client.delete(url, headers=coordinator_headers)).status_code == 403
    assert (await client.delete(url, headers=admin_headers)).status_code == 204
    missing = await client.get(url, headers=admin_headers)
    assert missing.status_code == 404
    assert error_code(missing) == "NOT_FOUND"


async def test_client_receives_welcome_notification(client, parties) -> None:
    _, (_, coordinator_headers), (client_user, client_headers) = parties
    await create_exchange(client, coordinator_headers, client_id=str(client_user.id))

    count = await client.get("/api/notifications/unread-count", headers=client_headers)
    listing = await client.get("/api/notifications", headers=client_headers)

    assert count.json()["unread"] >= 1
    assert any(item["title"] == "Welcome" for item in listing.json()["items"])


async def test_readding_removed_participant_reactivates_row(client, parties, make_user) -> None:
    _, (coordinator, coordinator_headers), _ = parties
    attorney, attorney_headers = await make_user("third_party")
    exchange = await create_exchange(client, coordinator_headers)
    url = f"/api/exchanges/{exchange['id']}"

    first = await client.post(
        f"{url}/participants",
        json={"user_id": str(attorney.id), "role": "third_party", "access_level": "read"},
        headers=coordinator_headers,
    )
    removed = await client.delete(f"{url}/participants/{attorney.id}", headers=coordinator_headers)
    assert removed.status_code == 204
    assert (await client.get(url, headers=attorney_headers)).status_code == 403

    again = await client.post(
        f"{url}/participants",
        json={"user_id": str(attorney.id), "role": "agency", "access_level": "write"},
        headers=coordinator_headers,
    )

    assert again.status_code == 201
    assert again.json()["id"] == first.json()["id"]
    assert again.json()["is_active"] is True
    assert again.json()["role"] == "agency"
    assert again.json()["access_level"] == "write"
    assert (await client.get(url, headers=attorney_headers)).status_code == 200
    listing = (await client.get(f"{url}/participants", headers=coordinator_headers)).json()
    assert [item["user_id"] for item in listing].count(str(attorney.id)) == 1


async def test_all_permissions_lists_every_party(client, parties, make_user) -> None:
    _, (coordinator, coordinator_headers), (client_user, _) = parties
    agent, agent_headers = await make_user("agency")
    exchange = await create_exchange(client, coordinator_headers, client_id=str(client_user.id))
    url = f"/api/exchanges/{exchange['id']}"
    await client.post(
        f"{url}/participants",
        json={"user_id": str(agent.id), "role": "agency"},
        headers=coordinator_headers,
    )

    response = await client.get(f"{url}/all-permissions", headers=coordinator_headers)

    assert response.status_code == 200
    rows = {row["user_id"]: row for row in response.json()}
    assert list(rows) == [str(coordinator.id), str(client_user.id), str(agent.id)]
    assert rows[str(coordinator.id)]["role"] == "coordinator"
    assert rows[str(coordinator.id)]["permissions"]["can_delete"] is False
    assert rows[str(client_user.id)]["permissions"]["can_edit"] is True
    assert rows[str(agent.id)]["permissions"]["can_view_overview"] is True
    assert rows[str(agent.id)]["permissions"]["can_edit"] is False

    denied = await client.get(f"{url}/all-permissions", headers=agent_headers)
    assert denied.status_code == 403
    assert denied.json()["error"]["details"]["required_permission"] == "can_view_participants"

import pytest

from tests.api_helpers import error_code, exchange_payload

pytestmark = pytest.mark.anyio


@pytest.fixture
async def exchange(client, make_user):
    _, coordinator_headers = await make_user("coordinator")
    client_user, client_headers = await make_user("client")
    response = await client.post(
        "/api/exchanges",
        json=exchange_payload(client_id=str(client_user.id)),
        headers=coordinator_headers,
    )
    return {
        "id": response.json()["id"],
        "coordinator": coordinator_headers,
        "client": client_headers,
    }


async def send(client, exchange, content: str, headers=None):
    return await client.post(
        f"/api/exchanges/{exchange['id']}/messages",
        json={"content": content},
        headers=headers or exchange["coordinator"],
    )


async def unread(client, headers) -> int:
    response = await client.get("/api/messages/unread-count", headers=headers)
    return response.json()["unread"]


async def test_sender_has_read_own_message(client, exchange) -> None:
    response = await send(client, exchange, "  Wire instructions attached  ")

    assert response.status_code == 201
    assert response.json()["content"] == "Wire instructions attached"
    assert await unread(client, exchange["coordinator"]) == 0
    assert await unread(client, exchange["client"]) == 1


async def test_mark_read_clears_unread_count(client, exchange) -> None:
    message = (await send(client, exchange, "Please sign the agreement")).json()

    response = await client.put(f"/api/messages/{message['id']}/read", headers=exchange["client"])

    assert response.status_code == 200
    assert len(response.json()["read_by"]) == 2
    assert await unread(client, exchange["client"]) == 0


async def test_unread_counts_track_receipts_per_reader(client, exchange) -> None:
    first = (await send(client, exchange, "Closing moved to Friday")).json()
    await send(client, exchange, "Escrow opened")
    await send(client, exchange, "Got it, thanks", headers=exchange["client"])

    assert await unread(client, exchange["client"]) == 2
    assert await unread(client, exchange["coordinator"]) == 1

    read_url = f"/api/messages/{first['id']}/read"
    await client.put(read_url, headers=exchange["client"])
    again = await client.put(read_url, headers=exchange["client"])

    assert again.json()["read_by"][0] == first["sender_id"]
    assert len(again.json()["read_by"]) == 2
    assert await unread(client, exchange["client"]) == 1

    deleted = await client.delete(f"/api/messages/{first['id']}", headers=exchange["coordinator"])
    assert deleted.status_code == 204
    assert await unread(client, exchange["client"]) == 1


async def test_blank_message_is_rejected(client, exchange) -> None:
    response = await send(client, exchange, "   ")

    assert response.status_code == 422


async def test_outsider_cannot_post(client, make_user, exchange) -> None:
    _, outsider_headers = await make_user("client")

    response = await send(client, exchange, "hello", headers=outsider_headers)

    assert response.status_code == 403
    assert error_code(response) == "EXCHANGE_ACCESS_DENIED"


async def test_only_sender_deletes_message(client, exchange) -> None:
    message = (await send(client, exchange, "Draft")).json()

    denied = await client.delete(f"/api/messages/{message['id']}", headers=exchange["client"])
    assert denied.status_code == 403

    deleted = await client.delete(f"/api/messages/{message['id']}", headers=exchange["coordinator"])
    assert deleted.status_code == 204

    listing = await client.get(
        f"/api/exchanges/{exchange['id']}/messages", headers=exchange["coordinator"]
    )
    assert listing.json()["total"] == 0


async def test_notifications_mark_read(client, exchange) -> None:
    count = await client.get("/api/notifications/unread-count", headers=exchange["client"])
    assert count.json()["unread"] >= 1

    listing = (await client.get("/api/notifications", headers=exchange["client"])).json()
    first = listing["items"][0]
    marked = await client.put(f"/api/notifications/{first['id']}/read", headers=exchange["client"])
    assert marked.json()["is_read"] is True

    response = await client.put("/api/notifications/mark-all-read", headers=exchange["client"])
    assert response.json()["updated"] == listing["total"] - 1
    count = await client.get("/api/notifications/unread-count", headers=exchange["client"])
    assert count.json()["unread"] == 0

import pytest

from peak1031.application.auth_rate_limit import PIN_RATE_LIMIT_MAX_ATTEMPTS
from peak1031.config import get_settings
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


async def upload(client, exchange, *, content=b"closing statement", pin=None, headers=None):
    data = {"category": "closing", "description": "HUD-1"}
    if pin is not None:
        data["pin"] = pin
    return await client.post(
        f"/api/exchanges/{exchange['id']}/documents",
        files={"file": ("statement.pdf", content, "application/pdf")},
        data=data,
        headers=headers or exchange["coordinator"],
    )


async def test_upload_list_and_download(client, exchange) -> None:
    response = await upload(client, exchange)

    assert response.status_code == 201
    document = response.json()
    assert document["original_filename"] == "statement.pdf"
    assert document["size"] == len(b"closing statement")
    assert document["pin_protected"] is False

    listing = await client.get(
        f"/api/exchanges/{exchange['id']}/documents", headers=exchange["client"]
    )
    assert [item["id"] for item in listing.json()["items"]] == [document["id"]]

    download = await client.get(
        f"/api/documents/{document['id']}/download", headers=exchange["client"]
    )
    assert download.status_code == 200
    assert download.content == b"closing statement"


async def test_empty_upload_is_rejected(client, exchange) -> None:
    response = await upload(client, exchange, content=b"")

    assert response.status_code == 400
    assert error_code(response) == "VALIDATION_ERROR"


async def test_oversized_upload_is_rejected(client, exchange, monkeypatch) -> None:
    monkeypatch.setattr(get_settings(), "max_upload_bytes", 16)

    response = await upload(client, exchange, content=b"x" * 17)

    assert response.status_code == 413
    assert error_code(response) == "FILE_TOO_LARGE"
    assert response.json()["error"]["details"] == {"max_bytes": 16, "size": 17}
    listing = await client.get(
        f"/api/exchanges/{exchange['id']}/documents", headers=exchange["coordinator"]
    )
    assert listing.json()["total"] == 0


async def test_short_pin_is_rejected(client, exchange) -> None:
    response = await upload(client, exchange, pin="12")

    assert response.status_code == 400


async def test_pin_protected_download(client, exchange) -> None:
    document = (await upload(client, exchange, pin="4321")).json()
    url = f"/api/documents/{document['id']}/download"
    assert document["pin_protected"] is True

    missing = await client.get(url, headers=exchange["client"])
    assert missing.status_code == 403
    assert error_code(missing) == "PIN_REQUIRED"

    wrong = await client.get(url, params={"pin": "0000"}, headers=exchange["client"])
    assert wrong.status_code == 403

    by_query = await client.get(url, params={"pin": "4321"}, headers=exchange["client"])
    assert by_query.status_code == 200

    by_header = await client.get(
        url, headers={**exchange["client"], "X-Document-Pin": "4321"}
    )
    assert by_header.status_code == 200


async def test_repeated_wrong_pins_are_rate_limited(client, exchange) -> None:
    document = (await upload(client, exchange, pin="4321")).json()
    url = f"/api/documents/{document['id']}/download"

    for _ in range(PIN_RATE_LIMIT_MAX_ATTEMPTS):
        response = await client.get(url, params={"pin": "0000"}, headers=exchange["client"])
        assert response.status_code == 403

    response = await client.get(url, params={"pin": "4321"}, headers=exchange["client"])

    assert response.status_code == 429
    assert error_code(response) == "RATE_LIMITED"


async def test_clearing_pin(client, exchange) -> None:
    document = (await upload(client, exchange, pin="4321")).json()

    response = await client.put(
        f"/api/documents/{document['id']}", json={"pin": ""}, headers=exchange["coordinator"]
    )

    assert response.json()["pin_protected"] is False


async def test_delete_requires_delete_permission(client, make_user, exchange) -> None:
    document = (await upload(client, exchange)).json()
    _, admin_headers = await make_user("admin")

    # can_delete_documents is not part of the coordinator defaults
    denied = await client.delete(f"/api/documents/{document['id']}", headers=exchange["coordinator"])
    assert denied.status_code == 403
    assert error_code(denied) == "EXCHANGE_PERMISSION_DENIED"

    deleted = await client.delete(f"/api/documents/{document['id']}", headers=admin_headers)
    assert deleted.status_code == 204
    gone = await client.get(f"/api/documents/{document['id']}", headers=admin_headers)
    assert gone.status_code == 404

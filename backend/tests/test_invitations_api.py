from datetime import datetime, timezone

import pytest
from sqlalchemy import update

from peak1031.models import ExchangeInvitation
from tests.api_helpers import error_code, exchange_payload

pytestmark = pytest.mark.anyio

NEW_ACCOUNT = {"password": "s3cure-pass", "first_name": "Dana", "last_name": "Lee"}


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
        "number": response.json()["exchange_number"],
        "coordinator": coordinator,
        "coordinator_headers": coordinator_headers,
        "client_headers": client_headers,
    }


async def invite(client, exchange, *entries, headers=None, message=None):
    return await client.post(
        f"/api/exchanges/{exchange['id']}/invitations",
        json={"invitations": list(entries), "message": message},
        headers=headers or exchange["coordinator_headers"],
    )


async def test_invite_new_user_then_accept(client, exchange) -> None:
    response = await invite(
        client,
        exchange,
        {"email": "Dana@Example.com", "role": "client", "access_level": "write"},
        message="Welcome aboard",
    )

    assert response.status_code == 200
    [result] = response.json()
    assert result["status"] == "invitation_sent"
    assert result["email"] == "dana@example.com"
    assert result["invitation"]["status"] == "pending"
    token = result["token"]

    details = await client.get(f"/api/invitations/details/{token}")
    assert details.status_code == 200
    assert details.json()["exchange_number"] == exchange["number"]
    assert details.json()["inviter_name"] == "Coordinator Tester"
    assert details.json()["custom_message"] == "Welcome aboard"

    accepted = await client.post(f"/api/invitations/accept/{token}", json=NEW_ACCOUNT)

    assert accepted.status_code == 201
    body = accepted.json()
    assert body["user"]["email"] == "dana@example.com"
    assert body["role"] == "client"
    assert body["exchange_id"] == exchange["id"]
    headers = {"Authorization": f"Bearer {body['access_token']}"}
    permissions = await client.get(
        f"/api/exchanges/{exchange['id']}/permissions", headers=headers
    )
    assert permissions.status_code == 200
    assert permissions.json()["access_level"] == "write"

    members = await client.get(
        f"/api/exchanges/{exchange['id']}/users-and-invitations",
        headers=exchange["coordinator_headers"],
    )
    participant = next(
        item for item in members.json()["participants"] if item["user_id"] == body["user"]["id"]
    )
    assert participant["added_by"] == str(exchange["coordinator"].id)
    assert members.json()["invitations"][0]["status"] == "accepted"

    reused = await client.post(f"/api/invitations/accept/{token}", json=NEW_ACCOUNT)
    assert reused.status_code == 404


async def test_existing_user_is_added_directly(client, make_user, exchange) -> None:
    attorney, attorney_headers = await make_user("third_party")
    entry = {"email": attorney.email, "role": "third_party", "access_level": "read"}

    response = await invite(client, exchange, entry)

    [result] = response.json()
    assert result["status"] == "added_existing_user"
    assert result["token"] is None
    assert result["invitation"]["status"] == "accepted"
    assert (await client.get(f"/api/exchanges/{exchange['id']}", headers=attorney_headers)).status_code == 200
    notifications = await client.get("/api/notifications", headers=attorney_headers)
    assert notifications.json()["items"][0]["title"] == "You've been added to an exchange!"

    again = await invite(client, exchange, entry)
    assert again.json()[0]["status"] == "already_participant"


async def test_pending_invitation_is_not_duplicated(client, exchange) -> None:
    await invite(client, exchange, {"email": "new@example.com"})

    again = await invite(client, exchange, {"email": "NEW@example.com"})

    assert again.json()[0]["status"] == "already_invited"
    listing = await client.get(
        f"/api/exchanges/{exchange['id']}/invitations", headers=exchange["coordinator_headers"]
    )
    assert listing.json()["total"] == 1
    assert listing.json()["pending"] == 1


async def test_only_coordinator_or_admin_manages_invitations(client, make_user, exchange) -> None:
    denied = await invite(
        client, exchange, {"email": "new@example.com"}, headers=exchange["client_headers"]
    )
    assert denied.status_code == 403
    assert error_code(denied) == "PERMISSION_DENIED"

    _, admin_headers = await make_user("admin")
    allowed = await invite(client, exchange, {"email": "new@example.com"}, headers=admin_headers)
    assert allowed.status_code == 200

    listing = await client.get(
        f"/api/exchanges/{exchange['id']}/invitations", headers=exchange["client_headers"]
    )
    assert listing.status_code == 403


async def test_resend_rotates_token_and_revoke_cancels(client, exchange) -> None:
    [sent] = (await invite(client, exchange, {"email": "new@example.com"})).json()
    invitation_id = sent["invitation"]["id"]

    resent = await client.post(
        f"/api/invitations/{invitation_id}/resend", headers=exchange["coordinator_headers"]
    )
    assert resent.status_code == 200
    token = resent.json()["token"]
    assert token != sent["token"]
    assert (await client.get(f"/api/invitations/details/{sent['token']}")).status_code == 404
    assert (await client.get(f"/api/invitations/details/{token}")).status_code == 200

    revoked = await client.delete(
        f"/api/invitations/{invitation_id}", headers=exchange["coordinator_headers"]
    )
    assert revoked.status_code == 200
    assert revoked.json()["status"] == "cancelled"
    assert revoked.json()["cancelled_at"] is not None
    assert (await client.get(f"/api/invitations/details/{token}")).status_code == 404

    stale = await client.post(
        f"/api/invitations/{invitation_id}/resend", headers=exchange["coordinator_headers"]
    )
    assert stale.status_code == 400
    assert error_code(stale) == "VALIDATION_ERROR"


async def test_expired_invitation_cannot_be_accepted(client, session_factory, exchange) -> None:
    [sent] = (await invite(client, exchange, {"email": "late@example.com"})).json()
    async with session_factory() as session:
        await session.execute(
            update(ExchangeInvitation).values(
                expires_at=datetime(2020, 1, 1, tzinfo=timezone.utc)
            )
        )
        await session.commit()

    response = await client.post(f"/api/invitations/accept/{sent['token']}", json=NEW_ACCOUNT)

    assert response.status_code == 400
    assert error_code(response) == "VALIDATION_ERROR"
    listing = await client.get(
        f"/api/exchanges/{exchange['id']}/invitations", headers=exchange["coordinator_headers"]
    )
    assert listing.json()["expired"] == 1


async def test_accept_conflicts_with_registered_email(client, make_user, exchange) -> None:
    [sent] = (await invite(client, exchange, {"email": "race@example.com"})).json()
    _, headers = await make_user("client", email="race@example.com")

    mine = await client.get("/api/invitations", headers=headers)
    assert [item["id"] for item in mine.json()] == [sent["invitation"]["id"]]

    response = await client.post(f"/api/invitations/accept/{sent['token']}", json=NEW_ACCOUNT)

    assert response.status_code == 409
    assert error_code(response) == "CONFLICT_ERROR"


async def test_accept_requires_password_length(client, exchange) -> None:
    [sent] = (await invite(client, exchange, {"email": "short@example.com"})).json()

    response = await client.post(
        f"/api/invitations/accept/{sent['token']}", json={**NEW_ACCOUNT, "password": "short"}
    )

    assert response.status_code == 422

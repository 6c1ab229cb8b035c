import pytest

from tests.api_helpers import TEST_PASSWORD, error_code

pytestmark = pytest.mark.anyio


async def login(client, email: str, password: str):
    return await client.post("/auth/login", json={"email": email, "password": password})


async def test_admin_creates_user_who_can_log_in(client, make_user) -> None:
    _, admin_headers = await make_user("admin")

    response = await client.post(
        "/api/users",
        json={
            "email": "  Jordan.Fields@Example.com ",
            "password": "long-enough-pass",
            "role": "coordinator",
            "first_name": "Jordan",
        },
        headers=admin_headers,
    )

    assert response.status_code == 201
    assert response.json()["email"] == "jordan.fields@example.com"
    assert (await login(client, "jordan.fields@example.com", "long-enough-pass")).status_code == 200


async def test_duplicate_email_conflicts(client, make_user) -> None:
    existing, admin_headers = await make_user("admin")

    response = await client.post(
        "/api/users",
        json={"email": existing.email, "password": "long-enough-pass"},
        headers=admin_headers,
    )

    assert response.status_code == 409
    assert error_code(response) == "CONFLICT_ERROR"


async def test_non_admin_cannot_list_users(client, make_user) -> None:
    _, headers = await make_user("coordinator")

    response = await client.get("/api/users", headers=headers)

    assert response.status_code == 403


async def test_statistics_require_admin_role(client, make_user) -> None:
    _, admin_headers = await make_user("admin")
    _, coordinator_headers = await make_user("coordinator")
    await make_user("client", is_active=False)

    denied = await client.get("/api/users/statistics", headers=coordinator_headers)
    assert denied.status_code == 403
    assert error_code(denied) == "PERMISSION_DENIED"

    stats = (await client.get("/api/users/statistics", headers=admin_headers)).json()
    assert stats == {
        "total": 3,
        "active": 2,
        "inactive": 1,
        "by_role": {"admin": 1, "coordinator": 1, "client": 1},
    }


async def test_admin_cannot_delete_self(client, make_user) -> None:
    admin, admin_headers = await make_user("admin")

    response = await client.delete(f"/api/users/{admin.id}", headers=admin_headers)

    assert response.status_code == 400


async def test_delete_deactivates_and_revokes_session(client, make_user) -> None:
    _, admin_headers = await make_user("admin")
    user, user_headers = await make_user("client")

    response = await client.delete(f"/api/users/{user.id}", headers=admin_headers)

    assert response.status_code == 204
    fetched = await client.get(f"/api/users/{user.id}", headers=admin_headers)
    assert fetched.json()["is_active"] is False
    assert (await client.get("/auth/me", headers=user_headers)).status_code == 401


async def test_password_change_requires_current_password(client, make_user) -> None:
    user, headers = await make_user("client")
    url = f"/api/users/{user.id}/password"

    wrong = await client.put(
        url, json={"current_password": "nope", "new_password": "brand-new-pass"}, headers=headers
    )
    assert wrong.status_code == 401

    changed = await client.put(
        url,
        json={"current_password": TEST_PASSWORD, "new_password": "brand-new-pass"},
        headers=headers,
    )
    assert changed.status_code == 204
    assert (await login(client, user.email, "brand-new-pass")).status_code == 200


async def test_users_cannot_change_others_passwords(client, make_user) -> None:
    other, _ = await make_user("client")
    _, headers = await make_user("client")

    response = await client.put(
        f"/api/users/{other.id}/password", json={"new_password": "brand-new-pass"}, headers=headers
    )

    assert response.status_code == 403

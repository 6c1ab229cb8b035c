import pytest

from peak1031.application.auth_rate_limit import AUTH_RATE_LIMIT_MAX_ATTEMPTS, auth_rate_limiter

from tests.api_helpers import TEST_PASSWORD, error_code

pytestmark = pytest.mark.anyio


@pytest.fixture(autouse=True)
def clear_rate_limiter():
    auth_rate_limiter.clear()
    yield
    auth_rate_limiter.clear()


async def login(client, email: str, password: str = TEST_PASSWORD):
    return await client.post("/auth/login", json={"email": email, "password": password})


async def test_login_returns_tokens_and_me_works(client, make_user) -> None:
    user, _ = await make_user("coordinator", email="casey@example.com")

    response = await login(client, "Casey@Example.com")

    assert response.status_code == 200
    body = response.json()
    assert body["token_type"] == "bearer"
    me = await client.get(
        "/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"}
    )
    assert me.status_code == 200
    assert me.json()["id"] == str(user.id)
    assert me.json()["last_login_at"] is not None


async def test_login_wrong_password_uses_error_envelope(client, make_user) -> None:
    await make_user(email="client@example.com")

    response = await login(client, "client@example.com", "wrong")

    assert response.status_code == 401
    assert error_code(response) == "AUTH_ERROR"
    assert response.json()["error"]["message"] == "Invalid email or password"


async def test_login_is_rate_limited(client, make_user) -> None:
    await make_user(email="client@example.com")
    for _ in range(AUTH_RATE_LIMIT_MAX_ATTEMPTS):
        await login(client, "client@example.com", "wrong")

    response = await login(client, "client@example.com")

    assert response.status_code == 429
    assert error_code(response) == "RATE_LIMITED"


async def test_inactive_user_cannot_login(client, make_user) -> None:
    await make_user(email="gone@example.com", is_active=False)

    response = await login(client, "gone@example.com")

    assert response.status_code == 401


async def test_refresh_rotates_and_invalidates_old_token(client, make_user) -> None:
    await make_user(email="client@example.com")
    tokens = (await login(client, "client@example.com")).json()

    refreshed = await client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert refreshed.status_code == 200
    assert refreshed.json()["refresh_token"] != tokens["refresh_token"]

    replay = await client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert replay.status_code == 401


async def test_logout_revokes_session(client, make_user) -> None:
    await make_user(email="client@example.com")
    tokens = (await login(client, "client@example.com")).json()
    headers = {"Authorization": f"Bearer {tokens['access_token']}"}

    response = await client.post(
        "/auth/logout", json={"refresh_token": tokens["refresh_token"]}, headers=headers
    )
    assert response.status_code == 204

    me = await client.get("/auth/me", headers=headers)
    assert me.status_code == 401
    assert me.headers["www-authenticate"] == "Bearer"


async def test_missing_and_garbage_tokens(client) -> None:
    assert (await client.get("/auth/me")).status_code == 401
    response = await client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert error_code(response) == "AUTH_ERROR"

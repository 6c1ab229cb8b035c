import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import pytest

from peak1031.application.auth_rate_limit import (
    AUTH_RATE_LIMIT_MAX_ATTEMPTS,
    auth_rate_limiter,
)
from peak1031.errors import AuthError, RateLimitError
from peak1031.security.passwords import hash_secret
from peak1031.security.tokens import (
    create_refresh_token,
    decode_access_token,
    hash_refresh_token,
)
from peak1031.use_cases.auth.login_user import login_user
from peak1031.use_cases.auth.logout_user import logout_user
from peak1031.use_cases.auth.refresh_session import refresh_session

PASSWORD_HASH = hash_secret("correct-horse")


@dataclass
class FakeUser:
    id: uuid.UUID
    email: str
    password_hash: str
    role: str = "client"
    is_active: bool = True
    last_login_at: datetime | None = None


@dataclass
class FakeRefreshToken:
    user_id: uuid.UUID
    token_hash: str
    expires_at: datetime
    revoked: bool = False


class FakeUserPort:
    def __init__(self, user: FakeUser | None = None) -> None:
        self.user = user

    async def get_by_email(self, email: str) -> FakeUser | None:
        if self.user and self.user.email == email:
            return self.user
        return None

    async def get_by_id(self, user_id: uuid.UUID) -> FakeUser | None:
        if self.user and self.user.id == user_id:
            return self.user
        return None


class FakeTokenPort:
    def __init__(self, stored_token: FakeRefreshToken | None = None) -> None:
        self.stored_token = stored_token
        self.created_token: FakeRefreshToken | None = None
        self.revoked_user_id: uuid.UUID | None = None
        self.committed = False
        self.rolled_back = False

    async def create_or_rotate(
        self, user_id: uuid.UUID, token_hash: str, expires_at: datetime
    ) -> FakeRefreshToken:
        token = FakeRefreshToken(user_id=user_id, token_hash=token_hash, expires_at=expires_at)
        self.created_token = token
        self.stored_token = token
        return token

    async def get_by_hash(
        self, token_hash: str, *, for_update: bool = False
    ) -> FakeRefreshToken | None:
        if self.stored_token and self.stored_token.token_hash == token_hash:
            return self.stored_token
        return None

    async def revoke(self, user_id: uuid.UUID) -> FakeRefreshToken | None:
        self.revoked_user_id = user_id
        if self.stored_token:
            self.stored_token.revoked = True
        return self.stored_token

    async def commit(self) -> None:
        self.committed = True

    async def rollback(self) -> None:
        self.rolled_back = True


def make_user(**values) -> FakeUser:
    return FakeUser(
        id=uuid.uuid4(), email="client@example.com", password_hash=PASSWORD_HASH, **values
    )


def stored_for(user: FakeUser, refresh_token: str, **values) -> FakeRefreshToken:
    return FakeRefreshToken(
        user_id=user.id,
        token_hash=hash_refresh_token(refresh_token),
        expires_at=values.pop("expires_at", datetime.now(timezone.utc) + timedelta(days=1)),
        **values,
    )


@pytest.fixture(autouse=True)
def _reset_rate_limit() -> None:
    auth_rate_limiter.clear()


@pytest.mark.anyio
async def test_login_user_commits_tokens() -> None:
    user = make_user(role="coordinator")
    token_port = FakeTokenPort()

    tokens = await login_user(
        FakeUserPort(user), token_port, " Client@Example.com ", "correct-horse"
    )

    payload = decode_access_token(tokens.access_token)
    assert payload["sub"] == str(user.id)
    assert payload["role"] == "coordinator"
    assert token_port.created_token.token_hash == hash_refresh_token(tokens.refresh_token)
    assert token_port.committed is True
    assert user.last_login_at is not None


@pytest.mark.anyio
async def test_login_user_rejects_bad_password() -> None:
    token_port = FakeTokenPort()

    with pytest.raises(AuthError, match="Invalid email or password"):
        await login_user(FakeUserPort(make_user()), token_port, "client@example.com", "nope")

    assert token_port.created_token is None


@pytest.mark.anyio
async def test_login_user_rejects_inactive_account() -> None:
    with pytest.raises(AuthError, match="Account is disabled"):
        await login_user(
            FakeUserPort(make_user(is_active=False)),
            FakeTokenPort(),
            "client@example.com",
            "correct-horse",
        )


@pytest.mark.anyio
async def test_login_user_is_rate_limited_after_failures() -> None:
    user_port = FakeUserPort(make_user())
    for _ in range(AUTH_RATE_LIMIT_MAX_ATTEMPTS):
        with pytest.raises(AuthError):
            await login_user(
                user_port, FakeTokenPort(), "client@example.com", "nope", client_ip="1.2.3.4"
            )

    with pytest.raises(RateLimitError):
        await login_user(
            user_port, FakeTokenPort(), "client@example.com", "correct-horse", client_ip="1.2.3.4"
        )


@pytest.mark.anyio
async def test_refresh_session_rotates_token() -> None:
    user = make_user()
    refresh_token = create_refresh_token()
    token_port = FakeTokenPort(stored_for(user, refresh_token))

    tokens = await refresh_session(
        FakeUserPort(user), token_port, refresh_token, client_ip="127.0.0.1"
    )

    assert tokens.refresh_token != refresh_token
    assert token_port.stored_token.token_hash == hash_refresh_token(tokens.refresh_token)
    assert token_port.committed is True


@pytest.mark.anyio
async def test_refresh_session_revoked_token_rolls_back() -> None:
    user = make_user()
    refresh_token = create_refresh_token()
    token_port = FakeTokenPort(stored_for(user, refresh_token, revoked=True))

    with pytest.raises(AuthError):
        await refresh_session(FakeUserPort(user), token_port, refresh_token, client_ip="127.0.0.1")

    assert token_port.rolled_back is True
    assert token_port.committed is False


@pytest.mark.anyio
async def test_refresh_session_expired_token() -> None:
    user = make_user()
    refresh_token = create_refresh_token()
    token_port = FakeTokenPort(
        stored_for(
            user,
            refresh_token,
            expires_at=datetime.now(timezone.utc) - timedelta(seconds=1),
        )
    )

    with pytest.raises(AuthError, match="expired"):
        await refresh_session(FakeUserPort(user), token_port, refresh_token)


@pytest.mark.anyio
async def test_refresh_session_unknown_token() -> None:
    token_port = FakeTokenPort()

    with pytest.raises(AuthError, match="Invalid refresh token"):
        await refresh_session(FakeUserPort(), token_port, "never-issued")

    assert token_port.rolled_back is True


@pytest.mark.anyio
async def test_logout_user_revokes_token_owner() -> None:
    user = make_user()
    refresh_token = create_refresh_token()
    token_port = FakeTokenPort(stored_for(user, refresh_token))

    await logout_user(token_port, refresh_token)

    assert token_port.revoked_user_id == user.id
    assert token_port.committed is True


@pytest.mark.anyio
async def test_logout_user_uses_user_id_when_token_missing() -> None:
    user_id = uuid.uuid4()
    token_port = FakeTokenPort()

    await logout_user(token_port, "missing-token", user_id=user_id)

    assert token_port.revoked_user_id == user_id
    assert token_port.committed is True


@pytest.mark.anyio
async def test_logout_user_without_anything_is_noop() -> None:
    token_port = FakeTokenPort()

    await logout_user(token_port, None)

    assert token_port.revoked_user_id is None
    assert token_port.committed is False

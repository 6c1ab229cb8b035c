import uuid
from dataclasses import dataclass

from ...crud.refresh_token import RefreshTokenRepository
from ...security.tokens import (
    create_access_token,
    create_refresh_token,
    hash_refresh_token,
    refresh_token_expiry,
)


@dataclass(frozen=True)
class AuthTokens:
    access_token: str
    refresh_token: str


async def issue_tokens(
    token_repo: RefreshTokenRepository, user_id: uuid.UUID, role: str
) -> AuthTokens:
    """Rotate the user's single refresh token row and mint a new access token."""
    refresh_token = create_refresh_token()
    await token_repo.create_or_rotate(
        user_id, hash_refresh_token(refresh_token), refresh_token_expiry()
    )
    return AuthTokens(
        access_token=create_access_token(user_id, role),
        refresh_token=refresh_token,
    )

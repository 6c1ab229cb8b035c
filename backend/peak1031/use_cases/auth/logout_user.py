import uuid

from ...crud.refresh_token import RefreshTokenRepository
from ...errors import AppError
from ...security.tokens import InvalidTokenError, hash_refresh_token


async def logout_user(
    token_repo: RefreshTokenRepository,
    refresh_token: str | None,
    *,
    user_id: uuid.UUID | None = None,
) -> None:
    """Revoke the session named by the refresh token, or the caller's own session.

    Unknown tokens are ignored so logout stays idempotent.
    """
    try:
        token_hash = hash_refresh_token(refresh_token) if refresh_token else None
    except InvalidTokenError:
        token_hash = None

    try:
        stored = None
        if token_hash:
            stored = await token_repo.get_by_hash(token_hash, for_update=True)

        revoke_user_id = stored.user_id if stored else user_id
        if revoke_user_id is None:
            return

        await token_repo.revoke(revoke_user_id)
        await token_repo.commit()
    except AppError:
        await token_repo.rollback()
        raise
    except Exception:
        await token_repo.rollback()
        raise

import logging

from ...application.auth_rate_limit import auth_rate_limiter, check_refresh_rate_limit
from ...crud.refresh_token import RefreshTokenRepository
from ...crud.user import UserRepository
from ...errors import AppError, AuthError
from ...security.tokens import InvalidTokenError, hash_refresh_token
from ...utils.time import as_utc, utcnow
from .tokens import AuthTokens, issue_tokens

logger = logging.getLogger("peak1031.auth")


async def refresh_session(
    user_repo: UserRepository,
    token_repo: RefreshTokenRepository,
    refresh_token: str,
    *,
    client_ip: str | None = None,
) -> AuthTokens:
    try:
        token_hash = hash_refresh_token(refresh_token)
    except InvalidTokenError:
        raise AuthError("Invalid refresh token") from None
    rate_limit_key = check_refresh_rate_limit(token_hash, client_ip)

    try:
        stored = await token_repo.get_by_hash(token_hash, for_update=True)
        if stored is None or stored.revoked:
            raise AuthError("Invalid refresh token")
        if as_utc(stored.expires_at) <= utcnow():
            raise AuthError("Refresh token expired")

        user = await user_repo.get_by_id(stored.user_id)
        if user is None or not user.is_active:
            raise AuthError("Account is disabled")

        tokens = await issue_tokens(token_repo, user.id, user.role)
        await token_repo.commit()
    except AuthError:
        await token_repo.rollback()
        auth_rate_limiter.record_failure(rate_limit_key)
        logger.warning("refresh rejected ip=%s", client_ip)
        raise
    except AppError:
        await token_repo.rollback()
        raise
    except Exception:
        await token_repo.rollback()
        raise

    auth_rate_limiter.reset(rate_limit_key)
    return tokens

import logging

from ...application.auth_rate_limit import auth_rate_limiter, check_login_rate_limit
from ...crud.refresh_token import RefreshTokenRepository
from ...crud.user import UserRepository
from ...errors import AppError, AuthError
from ...security.passwords import verify_secret_async
from ...utils.time import utcnow
from .tokens import AuthTokens, issue_tokens

logger = logging.getLogger("peak1031.auth")


async def login_user(
    user_repo: UserRepository,
    token_repo: RefreshTokenRepository,
    email: str,
    password: str,
    *,
    client_ip: str | None = None,
) -> AuthTokens:
    normalized_email = email.strip().lower()
    rate_limit_key = check_login_rate_limit(normalized_email, client_ip)

    user = await user_repo.get_by_email(normalized_email)
    if user is None or not await verify_secret_async(password, user.password_hash):
        auth_rate_limiter.record_failure(rate_limit_key)
        logger.warning("login failed email=%s ip=%s", normalized_email, client_ip)
        raise AuthError("Invalid email or password")
    if not user.is_active:
        auth_rate_limiter.record_failure(rate_limit_key)
        logger.warning("login rejected for inactive user id=%s", user.id)
        raise AuthError("Account is disabled")

    try:
        tokens = await issue_tokens(token_repo, user.id, user.role)
        user.last_login_at = utcnow()
        await token_repo.commit()
    except AppError:
        await token_repo.rollback()
        raise
    except Exception:
        await token_repo.rollback()
        raise

    auth_rate_limiter.reset(rate_limit_key)
    logger.info("login succeeded user_id=%s role=%s", user.id, user.role)
    return tokens

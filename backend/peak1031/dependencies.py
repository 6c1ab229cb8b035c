import logging
from collections.abc import AsyncGenerator
from typing import Callable

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from .crud.refresh_token import RefreshTokenRepository
from .crud.user import UserRepository
from .database import get_session
from .models.user import User
from .security.tokens import (
    ExpiredTokenError,
    InvalidTokenError,
    decode_access_token,
    subject_user_id,
)
from .services.context import RequestContext
from .services.permission_service import PermissionService
from .utils.time import as_utc, utcnow

logger = logging.getLogger("peak1031.permissions")

bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async for session in get_session():
        yield session


def get_user_repository(db: AsyncSession = Depends(get_db)) -> UserRepository:
    return UserRepository(db)


def get_refresh_token_repository(
    db: AsyncSession = Depends(get_db),
) -> RefreshTokenRepository:
    return RefreshTokenRepository(db)


def client_ip(request: Request) -> str:
    client_host = request.client.host if request.client else None
    return client_host or "unknown-ip"


def get_request_context(request: Request) -> RequestContext:
    return RequestContext(
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise _unauthorized("Not authenticated")

    try:
        payload = decode_access_token(credentials.credentials)
        user_id = subject_user_id(payload)
    except ExpiredTokenError:
        raise _unauthorized("Token has expired") from None
    except InvalidTokenError:
        raise _unauthorized("Invalid token") from None

    user = await UserRepository(db).get_by_id(user_id)
    if user is None:
        raise _unauthorized("User not found")
    if not user.is_active:
        raise _unauthorized("Account is disabled")

    session_token = await RefreshTokenRepository(db).get_by_user_id(user_id)
    if session_token is None:
        raise _unauthorized("Session not found")
    if session_token.revoked:
        raise _unauthorized("Session revoked")
    if as_utc(session_token.expires_at) <= utcnow():
        raise _unauthorized("Session has expired")

    return user


async def get_current_user_optional(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User | None:
    if credentials is None:
        return None
    try:
        return await get_current_user(credentials=credentials, db=db)
    except HTTPException:
        return None


def _log_denied(request: Request, user: User, permission: str) -> None:
    logger.warning(
        "access denied method=%s path=%s user_id=%s role=%s permission=%s",
        request.method,
        request.url.path,
        user.id,
        user.role,
        permission,
    )


def require_role(*roles: str) -> Callable:
    """Dependency that only lets the listed system roles through."""
    allowed = frozenset(roles)

    async def dependency(
        request: Request,
        user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
    ) -> User:
        if user.role in allowed:
            return user
        permission = "role:" + "|".join(sorted(allowed))
        _log_denied(request, user, permission)
        await PermissionService(db).audit_denial(
            user, permission, request.url.path, get_request_context(request)
        )
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")

    return dependency


def require_capability(resource: str, action: str) -> Callable:
    """Dependency enforcing a ``resource.action`` permission from the role policy."""
    permission = f"{resource}.{action}"

    async def dependency(
        request: Request,
        user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
    ) -> User:
        service = PermissionService(db)
        if service.has_permission(user, permission):
            return user
        _log_denied(request, user, permission)
        await service.audit_denial(user, permission, request.url.path, get_request_context(request))
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Permission denied: {permission} required",
        )

    return dependency

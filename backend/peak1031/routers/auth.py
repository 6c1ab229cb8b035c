from fastapi import APIRouter, Depends, Request, status

from ..crud.refresh_token import RefreshTokenRepository
from ..crud.user import UserRepository
from ..dependencies import (
    client_ip,
    get_current_user,
    get_current_user_optional,
    get_refresh_token_repository,
    get_user_repository,
)
from ..models.user import User
from ..schemas.auth import LogoutRequest, RefreshTokenRequest, TokenResponse, UserLogin
from ..schemas.user import UserRead
from ..use_cases.auth.login_user import login_user
from ..use_cases.auth.logout_user import logout_user
from ..use_cases.auth.refresh_session import refresh_session

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=TokenResponse)
async def login(
    payload: UserLogin,
    request: Request,
    user_repo: UserRepository = Depends(get_user_repository),
    token_repo: RefreshTokenRepository = Depends(get_refresh_token_repository),
) -> TokenResponse:
    tokens = await login_user(
        user_repo, token_repo, payload.email, payload.password, client_ip=client_ip(request)
    )
    return TokenResponse(access_token=tokens.access_token, refresh_token=tokens.refresh_token)


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(
    payload: RefreshTokenRequest,
    request: Request,
    user_repo: UserRepository = Depends(get_user_repository),
    token_repo: RefreshTokenRepository = Depends(get_refresh_token_repository),
) -> TokenResponse:
    tokens = await refresh_session(
        user_repo, token_repo, payload.refresh_token, client_ip=client_ip(request)
    )
    return TokenResponse(access_token=tokens.access_token, refresh_token=tokens.refresh_token)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    payload: LogoutRequest,
    token_repo: RefreshTokenRepository = Depends(get_refresh_token_repository),
    user: User | None = Depends(get_current_user_optional),
) -> None:
    await logout_user(token_repo, payload.refresh_token, user_id=user.id if user else None)


@router.get("/me", response_model=UserRead)
async def me(user: User = Depends(get_current_user)) -> User:
    return user

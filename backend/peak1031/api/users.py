from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..dependencies import get_current_user, get_db, get_request_context, require_role
from ..models.user import User
from ..schemas.common import Page, page_of
from ..schemas.user import PasswordChange, RoleName, UserCreate, UserRead, UserStatistics, UserUpdate
from ..services.context import RequestContext
from ..services.user_service import UserService

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=Page[UserRead])
async def list_users(
    role: RoleName | None = Query(None),
    is_active: bool | None = Query(None),
    search: str | None = Query(None, description="Match email, name or company"),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
) -> Page[UserRead]:
    items, total = await UserService(db).list_users(
        current_user,
        role=role,
        is_active=is_active,
        search=search,
        limit=limit,
        offset=offset,
        context=context,
    )
    return page_of(UserRead, items, total, limit, offset)


@router.get("/statistics", response_model=UserStatistics)
async def user_statistics(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_role("admin")),
    context: RequestContext = Depends(get_request_context),
) -> UserStatistics:
    return await UserService(db).statistics(current_user, context)


@router.post("", response_model=UserRead, status_code=status.HTTP_201_CREATED)
async def create_user(
    payload: UserCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    return await UserService(db).create_user(payload, current_user, context)


@router.get("/{user_id}", response_model=UserRead)
async def get_user(
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    return await UserService(db).get_user(user_id, current_user, context)


@router.put("/{user_id}", response_model=UserRead)
async def update_user(
    user_id: UUID,
    payload: UserUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    return await UserService(db).update_user(user_id, payload, current_user, context)


@router.post("/{user_id}/activate", response_model=UserRead)
async def activate_user(
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    return await UserService(db).set_active(user_id, True, current_user, context)


@router.post("/{user_id}/deactivate", response_model=UserRead)
async def deactivate_user(
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    return await UserService(db).set_active(user_id, False, current_user, context)


@router.put("/{user_id}/password", status_code=status.HTTP_204_NO_CONTENT)
async def change_password(
    user_id: UUID,
    payload: PasswordChange,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
) -> Response:
    await UserService(db).change_password(user_id, payload, current_user, context)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
) -> Response:
    await UserService(db).delete_user(user_id, current_user, context)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..dependencies import get_current_user, get_db, get_request_context
from ..models.user import User
from ..schemas.audit_social import (
    AssignmentCreate,
    AssignmentRead,
    AssignmentUpdate,
    AuditInteractions,
    AuditSocialStats,
    CommentCreate,
    CommentRead,
    CommentUpdate,
    LikeRequest,
    LikeResult,
    UserInteractions,
)
from ..services.audit_social_service import AuditSocialService
from ..services.context import RequestContext

router = APIRouter(prefix="/audit-social", tags=["audit-social"])


@router.get("/user/{user_id}/interactions", response_model=UserInteractions)
async def user_interactions(
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
) -> UserInteractions:
    return await AuditSocialService(db).user_interactions(user_id, current_user, context)


@router.put("/comments/{comment_id}", response_model=CommentRead)
async def update_comment(
    comment_id: UUID,
    payload: CommentUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    return await AuditSocialService(db).update_comment(
        comment_id, payload.content, current_user, context
    )


@router.delete("/comments/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_comment(
    comment_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
) -> Response:
    await AuditSocialService(db).delete_comment(comment_id, current_user, context)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/assignments/{assignment_id}", response_model=AssignmentRead)
async def update_assignment(
    assignment_id: UUID,
    payload: AssignmentUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    return await AuditSocialService(db).update_assignment(
        assignment_id, payload, current_user, context
    )


@router.get("/{audit_log_id}/interactions", response_model=AuditInteractions)
async def interactions(
    audit_log_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
) -> AuditInteractions:
    return await AuditSocialService(db).interactions(audit_log_id, current_user, context)


@router.post(
    "/{audit_log_id}/comments", response_model=CommentRead, status_code=status.HTTP_201_CREATED
)
async def add_comment(
    audit_log_id: UUID,
    payload: CommentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    return await AuditSocialService(db).add_comment(audit_log_id, payload, current_user, context)


@router.post("/{audit_log_id}/like", response_model=LikeResult)
async def toggle_like(
    audit_log_id: UUID,
    payload: LikeRequest | None = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
) -> LikeResult:
    reaction_type = payload.reaction_type if payload else "like"
    return await AuditSocialService(db).toggle_like(
        audit_log_id, reaction_type, current_user, context
    )


@router.post(
    "/{audit_log_id}/assign", response_model=AssignmentRead, status_code=status.HTTP_201_CREATED
)
async def assign(
    audit_log_id: UUID,
    payload: AssignmentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    return await AuditSocialService(db).assign(audit_log_id, payload, current_user, context)


@router.get("/{audit_log_id}/stats", response_model=AuditSocialStats)
async def stats(
    audit_log_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
) -> AuditSocialStats:
    return await AuditSocialService(db).stats(audit_log_id, current_user, context)

"""
Collaboration on audit log entries: threaded comments with mentions,
reactions, and follow-up assignments that can be escalated to admins.
"""
import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from ..auth.rbac_contract import Role
from ..crud.audit_log import AuditLogRepository
from ..crud.audit_social import AuditSocialRepository
from ..crud.exchange import ExchangeRepository
from ..crud.task import TaskRepository
from ..crud.user import UserRepository
from ..errors import NotFoundError, PermissionError, ValidationError
from ..models.audit_log import AuditLog
from ..models.audit_social import AuditAssignment, AuditComment, AuditLike
from ..models.user import User
from ..schemas.audit_social import (
    AssignmentCreate,
    AssignmentRead,
    AssignmentUpdate,
    AuditInteractions,
    AuditSocialStats,
    CommentCreate,
    CommentRead,
    LikeRead,
    LikeResult,
    UserInteractions,
)
from ..utils.time import utcnow
from .context import EMPTY_CONTEXT, RequestContext
from .notification_service import NotificationService
from .permission_service import PermissionService

logger = logging.getLogger("peak1031.audit.social")

MENTION_PREVIEW_LENGTH = 140


def _preview(content: str) -> str:
    if len(content) <= MENTION_PREVIEW_LENGTH:
        return content
    return content[: MENTION_PREVIEW_LENGTH - 3] + "..."


class AuditSocialService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.repo = AuditSocialRepository(session)
        self.logs = AuditLogRepository(session)
        self.users = UserRepository(session)
        self.exchanges = ExchangeRepository(session)
        self.tasks = TaskRepository(session)
        self.permissions = PermissionService(session)
        self.notifications = NotificationService(session)

    async def _load_log(self, audit_log_id: uuid.UUID, actor: User, context: RequestContext) -> AuditLog:
        await self.permissions.require_permission(
            actor, "system.view_audit", resource=str(audit_log_id), context=context
        )
        entry = await self.logs.get_by_id(audit_log_id)
        if entry is None:
            raise NotFoundError("Audit log not found")
        return entry

    async def _linked_exchange_id(self, entry: AuditLog) -> uuid.UUID | None:
        if entry.entity_type != "exchange":
            return None
        try:
            exchange_id = uuid.UUID(entry.entity_id)
        except ValueError:
            return None
        exchange = await self.exchanges.get_by_id(exchange_id)
        return exchange.id if exchange else None

    async def interactions(
        self, audit_log_id: uuid.UUID, actor: User, context: RequestContext = EMPTY_CONTEXT
    ) -> AuditInteractions:
        entry = await self._load_log(audit_log_id, actor, context)
        return AuditInteractions(
            audit_log_id=entry.id,
            comments=[CommentRead.model_validate(c) for c in await self.repo.comments_for(entry.id)],
            likes=[LikeRead.model_validate(like) for like in await self.repo.likes_for(entry.id)],
            assignments=[
                AssignmentRead.model_validate(a) for a in await self.repo.assignments_for(entry.id)
            ],
        )

    async def add_comment(
        self,
        audit_log_id: uuid.UUID,
        payload: CommentCreate,
        actor: User,
        context: RequestContext = EMPTY_CONTEXT,
    ) -> AuditComment:
        entry = await self._load_log(audit_log_id, actor, context)
        if payload.parent_id is not None:
            parent = await self.repo.get_comment(payload.parent_id)
            if parent is None or parent.audit_log_id != entry.id:
                raise ValidationError("Parent comment does not belong to this audit log")

        mentioned = [
            user for user in await self.users.get_many(payload.mentions)
            if user.is_active and user.id != actor.id
        ]
        comment = await self.repo.add(
            AuditComment(
                audit_log_id=entry.id,
                user_id=actor.id,
                parent_id=payload.parent_id,
                content=payload.content,
                mentions=[str(user.id) for user in mentioned],
            )
        )
        if mentioned:
            await self._handle_mentions(entry, comment, mentioned, actor)
        await self.session.commit()
        logger.info(
            "audit comment added audit_log_id=%s comment_id=%s mentions=%d",
            entry.id,
            comment.id,
            len(mentioned),
        )
        return comment

    async def _handle_mentions(
        self, entry: AuditLog, comment: AuditComment, mentioned: list[User], actor: User
    ) -> None:
        exchange_id = await self._linked_exchange_id(entry)
        for user in mentioned:
            if exchange_id is not None:
                await self.tasks.create(
                    exchange_id=exchange_id,
                    title=f"Review audit entry: {entry.action}",
                    description=_preview(comment.content),
                    status="PENDING",
                    priority="MEDIUM",
                    assigned_to=user.id,
                    created_by=actor.id,
                    meta={
                        "source": "audit_mention",
                        "audit_log_id": str(entry.id),
                        "comment_id": str(comment.id),
                    },
                )
        await self.notifications.notify(
            [user.id for user in mentioned],
            title=f"{actor.full_name} mentioned you",
            message=_preview(comment.content),
            type="mention",
            exchange_id=exchange_id,
            exclude=actor.id,
        )

    async def _owned_comment(
        self, comment_id: uuid.UUID, actor: User, action: str, context: RequestContext
    ) -> AuditComment:
        comment = await self.repo.get_comment(comment_id)
        if comment is None:
            raise NotFoundError("Comment not found")
        if comment.user_id != actor.id and actor.role != Role.ADMIN.value:
            await self.permissions.audit_denial(actor, action, str(comment_id), context)
            raise PermissionError("Only the author or an admin can change this comment")
        return comment

    async def update_comment(
        self,
        comment_id: uuid.UUID,
        content: str,
        actor: User,
        context: RequestContext = EMPTY_CONTEXT,
    ) -> AuditComment:
        comment = await self._owned_comment(comment_id, actor, "audit_comments.edit", context)
        comment.content = content
        comment.is_edited = True
        comment.edited_at = utcnow()
        await self.session.commit()
        return comment

    async def delete_comment(
        self, comment_id: uuid.UUID, actor: User, context: RequestContext = EMPTY_CONTEXT
    ) -> None:
        comment = await self._owned_comment(comment_id, actor, "audit_comments.delete", context)
        await self.repo.delete(comment)
        await self.session.commit()

    async def toggle_like(
        self,
        audit_log_id: uuid.UUID,
        reaction_type: str,
        actor: User,
        context: RequestContext = EMPTY_CONTEXT,
    ) -> LikeResult:
        """Same reaction again removes it; a different reaction replaces it."""
        entry = await self._load_log(audit_log_id, actor, context)
        like = await self.repo.get_like(entry.id, actor.id)
        if like is None:
            await self.repo.add(
                AuditLike(audit_log_id=entry.id, user_id=actor.id, reaction_type=reaction_type)
            )
            liked, current = True, reaction_type
        elif like.reaction_type == reaction_type:
            await self.repo.delete(like)
            liked, current = False, None
        else:
            like.reaction_type = reaction_type
            await self.session.flush()
            liked, current = True, reaction_type
        await self.session.commit()
        return LikeResult(
            liked=liked, reaction_type=current, reactions=await self.repo.reaction_counts(entry.id)
        )

    async def assign(
        self,
        audit_log_id: uuid.UUID,
        payload: AssignmentCreate,
        actor: User,
        context: RequestContext = EMPTY_CONTEXT,
    ) -> AuditAssignment:
        entry = await self._load_log(audit_log_id, actor, context)
        if actor.role not in (Role.ADMIN.value, Role.COORDINATOR.value):
            await self.permissions.audit_denial(actor, "audit_assignments.create", str(entry.id), context)
            raise PermissionError("Only admins and coordinators can assign audit entries")
        assignee = await self.users.get_by_id(payload.assigned_to)
        if assignee is None or not assignee.is_active:
            raise ValidationError("Assignee not found or inactive")

        assignment = await self.repo.add(
            AuditAssignment(
                audit_log_id=entry.id,
                assigned_to=assignee.id,
                assigned_by=actor.id,
                assignment_type=payload.assignment_type,
                priority="URGENT" if payload.escalate else payload.priority,
                status="open",
                escalated=payload.escalate,
                due_date=payload.due_date,
                notes=payload.notes,
            )
        )
        await self.notifications.notify(
            [assignee.id],
            title="Audit entry assigned",
            message=f"You have been assigned to {payload.assignment_type} '{entry.action}'",
            type="audit_assignment",
            urgent=payload.escalate,
            exclude=actor.id,
        )
        if payload.escalate:
            await self._notify_escalation(entry, actor)
        await self.session.commit()
        return assignment

    async def _notify_escalation(self, entry: AuditLog, actor: User) -> None:
        admins = await self.users.list_active_admins()
        await self.notifications.notify(
            [admin.id for admin in admins],
            title="Audit entry escalated",
            message=f"Audit entry '{entry.action}' on {entry.entity_type} was escalated",
            type="audit_escalation",
            urgent=True,
            exclude=actor.id,
        )
        logger.warning("audit entry escalated audit_log_id=%s actor=%s", entry.id, actor.id)

    async def update_assignment(
        self,
        assignment_id: uuid.UUID,
        payload: AssignmentUpdate,
        actor: User,
        context: RequestContext = EMPTY_CONTEXT,
    ) -> AuditAssignment:
        assignment = await self.repo.get_assignment(assignment_id)
        if assignment is None:
            raise NotFoundError("Assignment not found")
        if assignment.assigned_to != actor.id and actor.role != Role.ADMIN.value:
            await self.permissions.audit_denial(actor, "audit_assignments.edit", str(assignment_id), context)
            raise PermissionError("Only the assignee or an admin can update this assignment")

        if payload.status is not None:
            assignment.status = payload.status
        if payload.notes is not None:
            assignment.notes = payload.notes
        if payload.priority is not None:
            assignment.priority = payload.priority
        if payload.escalate and not assignment.escalated:
            assignment.escalated = True
            assignment.priority = "URGENT"
            entry = await self.logs.get_by_id(assignment.audit_log_id)
            if entry is not None:
                await self._notify_escalation(entry, actor)
        await self.session.commit()
        return assignment

    async def stats(
        self, audit_log_id: uuid.UUID, actor: User, context: RequestContext = EMPTY_CONTEXT
    ) -> AuditSocialStats:
        entry = await self._load_log(audit_log_id, actor, context)
        comments = await self.repo.comments_for(entry.id)
        assignments = await self.repo.assignments_for(entry.id)
        reactions = await self.repo.reaction_counts(entry.id)
        return AuditSocialStats(
            audit_log_id=entry.id,
            comments=len(comments),
            likes=sum(reactions.values()),
            reactions=reactions,
            assignments=len(assignments),
            open_assignments=sum(1 for a in assignments if a.status in ("open", "in_progress")),
            escalated=any(a.escalated for a in assignments),
        )

    async def user_interactions(
        self, user_id: uuid.UUID, actor: User, context: RequestContext = EMPTY_CONTEXT
    ) -> UserInteractions:
        if user_id != actor.id:
            await self.permissions.require_permission(
                actor, "system.view_audit", resource=str(user_id), context=context
            )
        return UserInteractions(
            user_id=user_id,
            comments=[CommentRead.model_validate(c) for c in await self.repo.comments_by_user(user_id)],
            likes=[LikeRead.model_validate(like) for like in await self.repo.likes_by_user(user_id)],
            assignments=[
                AssignmentRead.model_validate(a) for a in await self.repo.assignments_for_user(user_id)
            ],
        )

import logging
import uuid
from collections.abc import Iterable
from decimal import Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from ..auth.rbac_contract import validate_actor_type
from ..crud.audit_log import AuditLogRepository
from ..models.audit_log import AuditLog
from ..models.user import User
from .context import EMPTY_CONTEXT, RequestContext

logger = logging.getLogger("peak1031.audit")


def _json_value(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Decimal):
        return str(value)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(key): _json_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_json_value(item) for item in value]
    return str(value)


def serialize_entity(entity: Any, fields: Iterable[str] | None = None) -> dict[str, Any]:
    """JSON-safe snapshot of an ORM entity for audit before/after payloads."""
    if fields is None:
        fields = [
            key for key in getattr(entity, "__dict__", {})
            if not key.startswith("_")
        ]
    return {field: _json_value(getattr(entity, field, None)) for field in fields}


class AuditService:
    """Writes audit entries into the caller's transaction."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.audit_repo = AuditLogRepository(session)

    async def log(
        self,
        action: str,
        entity_type: str,
        entity_id: str | uuid.UUID,
        actor: User | None = None,
        actor_type: str = "user",
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
        reason: str | None = None,
        context: RequestContext = EMPTY_CONTEXT,
    ) -> AuditLog:
        """Record an audit event.

        Args:
            action: Dotted action name, e.g. 'exchange.stage_change'
            entity_type: Kind of entity touched, e.g. 'exchange'
            entity_id: Identifier of the entity
            actor: User performing the action; None for system or anonymous
            actor_type: 'user', 'system' or 'anonymous'
            before: State before the change
            after: State after the change
            reason: Optional free-text reason
            context: Client IP and user agent

        Raises:
            ValueError: If actor_type is invalid
        """
        validate_actor_type(actor_type)
        if actor is None and actor_type == "user":
            actor_type = "anonymous"

        entry = await self.audit_repo.create(
            actor_id=actor.id if actor else None,
            actor_type=actor_type,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id),
            before=_json_value(before) if before is not None else None,
            after=_json_value(after) if after is not None else None,
            reason=reason,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        )
        logger.debug(
            "audit action=%s entity=%s:%s actor=%s",
            action,
            entity_type,
            entity_id,
            actor.id if actor else actor_type,
        )
        return entry

    async def log_create(
        self,
        entity_type: str,
        entity_id: str | uuid.UUID,
        entity_data: dict[str, Any],
        actor: User | None = None,
        context: RequestContext = EMPTY_CONTEXT,
    ) -> AuditLog:
        return await self.log(
            action=f"{entity_type}.create",
            entity_type=entity_type,
            entity_id=entity_id,
            actor=actor,
            after=entity_data,
            context=context,
        )

    async def log_update(
        self,
        entity_type: str,
        entity_id: str | uuid.UUID,
        before_data: dict[str, Any],
        after_data: dict[str, Any],
        actor: User | None = None,
        reason: str | None = None,
        context: RequestContext = EMPTY_CONTEXT,
    ) -> AuditLog:
        return await self.log(
            action=f"{entity_type}.update",
            entity_type=entity_type,
            entity_id=entity_id,
            actor=actor,
            before=before_data,
            after=after_data,
            reason=reason,
            context=context,
        )

    async def log_delete(
        self,
        entity_type: str,
        entity_id: str | uuid.UUID,
        entity_data: dict[str, Any],
        actor: User | None = None,
        reason: str | None = None,
        context: RequestContext = EMPTY_CONTEXT,
    ) -> AuditLog:
        return await self.log(
            action=f"{entity_type}.delete",
            entity_type=entity_type,
            entity_id=entity_id,
            actor=actor,
            before=entity_data,
            reason=reason,
            context=context,
        )

    async def log_permission_denied(
        self,
        permission: str,
        actor: User | None = None,
        resource: str | None = None,
        context: RequestContext = EMPTY_CONTEXT,
    ) -> AuditLog:
        return await self.log(
            action="security.permission_denied",
            entity_type="permission",
            entity_id=permission,
            actor=actor,
            after={"permission": permission, "resource": resource},
            context=context,
        )

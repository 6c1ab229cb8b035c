import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import rbac_contract
from ..auth.exchange_permissions import ExchangeAccess, resolve_permissions
from ..crud.exchange import ExchangeRepository
from ..crud.participant import ParticipantRepository
from ..database import AsyncSessionLocal
from ..errors import (
    ExchangeAccessError,
    ExchangePermissionError,
    NotFoundError,
    PermissionError,
)
from ..models.exchange import Exchange
from ..models.participant import ExchangeParticipant
from ..models.user import User
from .audit_service import AuditService
from .context import EMPTY_CONTEXT, RequestContext

logger = logging.getLogger("peak1031.permissions")


def exchange_role_for(
    user: User, exchange: Exchange, participant: ExchangeParticipant | None
) -> str | None:
    """The role a user plays on one exchange, or None when unrelated."""
    if exchange.coordinator_id == user.id:
        return "coordinator"
    if exchange.client_id == user.id:
        return "client"
    if participant is not None and participant.is_active:
        return participant.role
    return None


class PermissionService:
    """Single entry point for system-role and per-exchange permission checks.

    Every denial is written to the audit log in its own session so the
    record survives the rollback of the request's transaction.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.exchanges = ExchangeRepository(session)
        self.participants = ParticipantRepository(session)

    def has_permission(self, user: User | None, permission: str) -> bool:
        if user is None or not user.is_active:
            return False
        return rbac_contract.role_has_permission(user.role, permission)

    async def require_permission(
        self,
        user: User | None,
        permission: str,
        *,
        resource: str | None = None,
        context: RequestContext = EMPTY_CONTEXT,
    ) -> None:
        """
        Raises:
            PermissionError: 403 when the user's role lacks the permission
        """
        if self.has_permission(user, permission):
            return
        await self.audit_denial(user, permission, resource, context)
        raise PermissionError(f"Permission denied: {permission} required")

    async def resolve_access(self, user: User, exchange: Exchange) -> ExchangeAccess | None:
        """Resolved flags for the user on the exchange, None when unrelated."""
        if user.role == rbac_contract.Role.ADMIN.value:
            return resolve_permissions(system_role=user.role, exchange_role="admin")

        participant = await self.participants.get_active(exchange.id, user.id)
        role = exchange_role_for(user, exchange, participant)
        if role is None:
            return None
        return resolve_permissions(
            system_role=user.role,
            exchange_role=role,
            access_level=participant.access_level if participant else None,
            overrides=participant.permissions if participant else None,
        )

    async def get_exchange(
        self,
        user: User,
        exchange_id: uuid.UUID,
        *,
        context: RequestContext = EMPTY_CONTEXT,
    ) -> tuple[Exchange, ExchangeAccess]:
        """
        Raises:
            NotFoundError: exchange does not exist or was deleted
            ExchangeAccessError: user has no relation to the exchange
        """
        exchange = await self.exchanges.get_by_id(exchange_id)
        if exchange is None:
            raise NotFoundError("Exchange not found")

        access = await self.resolve_access(user, exchange)
        if access is None:
            await self.audit_denial(user, "exchange.access", str(exchange_id), context)
            raise ExchangeAccessError()
        return exchange, access

    async def require_exchange_permission(
        self,
        user: User,
        exchange_id: uuid.UUID,
        flag: str,
        *,
        context: RequestContext = EMPTY_CONTEXT,
    ) -> tuple[Exchange, ExchangeAccess]:
        """
        Raises:
            ExchangePermissionError: user can see the exchange but lacks ``flag``
        """
        exchange, access = await self.get_exchange(user, exchange_id, context=context)
        if not access.has(flag):
            await self.audit_denial(user, flag, str(exchange_id), context)
            raise ExchangePermissionError(
                f"Permission denied: {flag} required",
                details={"required_permission": flag, "exchange_id": str(exchange_id)},
            )
        return exchange, access

    async def audit_denial(
        self,
        user: User | None,
        permission: str,
        resource: str | None,
        context: RequestContext,
    ) -> None:
        logger.warning(
            "permission_denied user_id=%s role=%s permission=%s resource=%s",
            user.id if user else None,
            user.role if user else None,
            permission,
            resource,
        )
        try:
            async with AsyncSessionLocal() as audit_session:
                await AuditService(audit_session).log_permission_denied(
                    permission=permission,
                    actor=user,
                    resource=resource,
                    context=context,
                )
                await audit_session.commit()
        except Exception:
            # The 403 is raised regardless of whether the audit write succeeded
            logger.exception("failed to audit permission denial permission=%s", permission)

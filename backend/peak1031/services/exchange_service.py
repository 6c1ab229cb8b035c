"""
Exchange lifecycle: creation with generated numbers and statutory deadlines,
updates with compliance recalculation, role-scoped listing and soft delete.
"""
import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from ..auth.rbac_contract import get_view_scope
from ..crud.exchange import ExchangeRepository, visibility_condition
from ..crud.user import UserRepository
from ..domain.deadlines import (
    completion_deadline_from,
    identification_deadline_from,
    refresh_compliance,
)
from ..domain.stages import RESERVED_STAGE_DATA_KEYS, ExchangeStage
from ..errors import ConflictError, ValidationError
from ..models.exchange import Exchange
from ..models.user import User
from ..schemas.exchange import ExchangeCreate, ExchangeUpdate
from ..utils.time import as_utc, utcnow
from .audit_service import AuditService, serialize_entity
from .context import EMPTY_CONTEXT, RequestContext
from .permission_service import PermissionService
from .stage_service import StageService

logger = logging.getLogger("peak1031.exchanges")

MANUAL_NUMBER_PREFIX = "MAN"

AUDITED_FIELDS = (
    "exchange_number",
    "name",
    "status",
    "stage",
    "priority",
    "risk_level",
    "compliance_status",
    "client_id",
    "coordinator_id",
    "exchange_value",
    "relinquished_value",
    "replacement_value",
    "identification_deadline",
    "completion_deadline",
    "completion_date",
)


class ExchangeService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.repo = ExchangeRepository(session)
        self.users = UserRepository(session)
        self.permissions = PermissionService(session)
        self.audit = AuditService(session)

    async def _check_party(self, user_id: uuid.UUID | None, expected_roles: set[str], label: str) -> None:
        if user_id is None:
            return
        party = await self.users.get_by_id(user_id)
        if party is None or not party.is_active:
            raise ValidationError(f"{label} user not found or inactive", details={"user_id": str(user_id)})
        if party.role not in expected_roles:
            raise ValidationError(
                f"{label} must have one of roles: {', '.join(sorted(expected_roles))}",
                details={"user_id": str(user_id), "role": party.role},
            )

    async def create_exchange(
        self,
        payload: ExchangeCreate,
        actor: User,
        context: RequestContext = EMPTY_CONTEXT,
    ) -> Exchange:
        await self.permissions.require_permission(actor, "exchanges.create", context=context)
        await self._check_party(payload.client_id, {"client"}, "Client")
        await self._check_party(payload.coordinator_id, {"coordinator", "admin"}, "Coordinator")

        now = utcnow()
        data = payload.model_dump(exclude={"exchange_number"})
        exchange_number = payload.exchange_number
        if exchange_number is None:
            exchange_number = await self.repo.next_exchange_number(MANUAL_NUMBER_PREFIX, now.year)
        elif await self.repo.exists_number(exchange_number):
            raise ConflictError(
                "Exchange number already exists", details={"exchange_number": exchange_number}
            )

        start_date = as_utc(payload.start_date)
        if start_date is not None:
            data["start_date"] = start_date
            if data.get("identification_deadline") is None:
                data["identification_deadline"] = identification_deadline_from(start_date)
            if data.get("completion_deadline") is None:
                data["completion_deadline"] = completion_deadline_from(start_date)

        # Coordinators own the exchanges they create unless one is named
        if data.get("coordinator_id") is None and actor.role == "coordinator":
            data["coordinator_id"] = actor.id

        exchange = Exchange(
            **data,
            exchange_number=exchange_number,
            status="PENDING",
            stage=ExchangeStage.EXCHANGE_CREATED.value,
            compliance_status="PENDING_REVIEW",
            stage_checklist={},
            stage_data={},
            stage_changed_at=now,
            created_by=actor.id,
            last_activity_at=now,
        )
        refresh_compliance(exchange, now)
        await self.repo.create(exchange)
        await self.repo.add_stage_entry(
            exchange.id, exchange.stage, changed_by=actor.id, entered_at=now
        )
        await self.audit.log_create(
            "exchange",
            exchange.id,
            serialize_entity(exchange, AUDITED_FIELDS),
            actor=actor,
            context=context,
        )
        await StageService(self.session).enter_stage(exchange, actor=actor, now=now)
        await self.session.commit()
        logger.info(
            "exchange created id=%s number=%s actor=%s",
            exchange.id,
            exchange.exchange_number,
            actor.id,
        )
        return exchange

    async def get_exchange(
        self, exchange_id: uuid.UUID, actor: User, context: RequestContext = EMPTY_CONTEXT
    ) -> Exchange:
        exchange, _ = await self.permissions.require_exchange_permission(
            actor, exchange_id, "can_view_overview", context=context
        )
        return exchange

    async def list_exchanges(
        self,
        actor: User,
        *,
        status: str | None = None,
        stage: str | None = None,
        priority: str | None = None,
        search: str | None = None,
        coordinator_id: uuid.UUID | None = None,
        client_id: uuid.UUID | None = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        limit: int = 30,
        offset: int = 0,
    ) -> tuple[list[Exchange], int]:
        scope = get_view_scope(actor.role, "exchanges")
        return await self.repo.list_by_filters(
            visibility_condition(actor.id, scope),
            status=status,
            stage=stage,
            priority=priority,
            search=search,
            coordinator_id=coordinator_id,
            client_id=client_id,
            sort_by=sort_by,
            sort_order=sort_order,
            limit=limit,
            offset=offset,
        )

    async def update_exchange(
        self,
        exchange_id: uuid.UUID,
        payload: ExchangeUpdate,
        actor: User,
        context: RequestContext = EMPTY_CONTEXT,
    ) -> Exchange:
        exchange, access = await self.permissions.require_exchange_permission(
            actor, exchange_id, "can_edit", context=context
        )
        changes = payload.model_dump(exclude_unset=True)

        financial = {"exchange_value", "relinquished_value", "replacement_value", "relinquished_sale_price"}
        if financial & set(changes) and not access.has("can_edit_financial"):
            await self.permissions.require_exchange_permission(
                actor, exchange_id, "can_edit_financial", context=context
            )
        timeline = {"identification_deadline", "completion_deadline", "start_date", "stage_data"}
        if timeline & set(changes) and not access.has("can_edit_timeline"):
            await self.permissions.require_exchange_permission(
                actor, exchange_id, "can_edit_timeline", context=context
            )
        reserved = sorted(RESERVED_STAGE_DATA_KEYS & set(changes.get("stage_data") or {}))
        if reserved:
            raise ValidationError(
                "stage_data keys are maintained by the stage workflow",
                details={"reserved": reserved},
            )
        if {"status", "client_id", "coordinator_id"} & set(changes):
            await self.permissions.require_permission(
                actor, "exchanges.manage_status", resource=str(exchange_id), context=context
            )
        if "client_id" in changes:
            await self._check_party(changes["client_id"], {"client"}, "Client")
        if "coordinator_id" in changes:
            await self._check_party(changes["coordinator_id"], {"coordinator", "admin"}, "Coordinator")

        before = serialize_entity(exchange, AUDITED_FIELDS)
        now = utcnow()

        if "stage_data" in changes:
            merged = dict(exchange.stage_data or {})
            merged.update(changes.pop("stage_data") or {})
            exchange.stage_data = merged
        for field, value in changes.items():
            if field in timeline and value is not None:
                value = as_utc(value)
            setattr(exchange, field, value)

        if changes.get("status") == "COMPLETED" and exchange.completion_date is None:
            exchange.completion_date = now
        refresh_compliance(exchange, now)
        exchange.last_activity_at = now

        await self.session.flush()
        await self.audit.log_update(
            "exchange",
            exchange.id,
            before,
            serialize_entity(exchange, AUDITED_FIELDS),
            actor=actor,
            context=context,
        )
        await self.session.commit()
        logger.info("exchange updated id=%s fields=%s actor=%s", exchange.id, sorted(changes), actor.id)
        return exchange

    async def delete_exchange(
        self, exchange_id: uuid.UUID, actor: User, context: RequestContext = EMPTY_CONTEXT
    ) -> None:
        await self.permissions.require_permission(
            actor, "exchanges.delete", resource=str(exchange_id), context=context
        )
        exchange, _ = await self.permissions.require_exchange_permission(
            actor, exchange_id, "can_delete", context=context
        )
        before = serialize_entity(exchange, AUDITED_FIELDS)
        exchange.is_active = False
        exchange.last_activity_at = utcnow()
        await self.audit.log_delete("exchange", exchange.id, before, actor=actor, context=context)
        await self.session.commit()
        logger.info("exchange deleted id=%s actor=%s", exchange.id, actor.id)

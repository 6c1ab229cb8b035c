"""
Server-side exchange stage workflow.

Advancement is authoritative here: the service checks who may move an
exchange, whether the current stage's checklist is satisfied, closes and
opens stage history rows, runs automatic actions and queues the stage's
notifications. Timer reminders are processed by the background scheduler
through :meth:`StageService.process_timers`.
"""
import logging
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from ..auth.exchange_permissions import ExchangeAccess
from ..auth.rbac_contract import Role
from ..crud.exchange import ExchangeRepository
from ..crud.participant import ParticipantRepository
from ..crud.user import UserRepository
from ..domain.deadlines import (
    COMPLETION_PERIOD,
    IDENTIFICATION_PERIOD,
    refresh_compliance,
)
from ..domain.stages import (
    PROGRESSION,
    STAGE_DEFINITIONS,
    TERMINAL_STAGES,
    AutomaticAction,
    ExchangeStage,
    StageDefinition,
    StageNotification,
    can_transition,
    evaluate_required_tasks,
    get_next_stage,
    get_progress_percent,
    get_stage_definition,
    missing_required_tasks,
    parse_stage,
)
from ..errors import PermissionError, StageTransitionError, ValidationError
from ..models.exchange import Exchange
from ..models.user import User
from ..schemas.stage import (
    AutomaticActionRead,
    RequiredTaskRead,
    StageDefinitionRead,
    StageHistoryRead,
    StageNotificationRead,
    StageStatusRead,
    TaskCheckRead,
)
from ..utils.time import as_utc, utcnow
from .audit_service import AuditService
from .context import EMPTY_CONTEXT, RequestContext
from .notification_service import NotificationService
from .permission_service import PermissionService

logger = logging.getLogger("peak1031.stages")

STAGE_NOTIFICATION_TYPE = "stage_change"
REMINDER_NOTIFICATION_TYPE = "deadline_reminder"


def definition_to_read(definition: StageDefinition) -> StageDefinitionRead:
    order = PROGRESSION.index(definition.stage) if definition.stage in PROGRESSION else None
    return StageDefinitionRead(
        stage=definition.stage.value,
        label=definition.label,
        description=definition.description,
        order=order,
        auto_advance=definition.auto_advance,
        requires_approval=definition.requires_approval,
        days_to_complete=definition.days_to_complete,
        required_tasks=[
            RequiredTaskRead(
                id=task.id, label=task.label, description=task.description, required=task.required
            )
            for task in definition.required_tasks
        ],
        automatic_actions=[
            AutomaticActionRead(
                id=action.id,
                label=action.label,
                trigger=action.trigger,
                delay_days=action.delay_days,
            )
            for action in definition.automatic_actions
        ],
        notifications=[
            StageNotificationRead(
                trigger=note.trigger,
                recipients=list(note.recipients),
                template=note.template,
                urgent=note.urgent,
            )
            for note in definition.notifications
        ],
    )


def stage_catalog() -> list[StageDefinitionRead]:
    return [definition_to_read(definition) for definition in STAGE_DEFINITIONS]


def _days_between(start: datetime | None, now: datetime) -> int | None:
    start = as_utc(start)
    if start is None:
        return None
    return max((now - start).days, 0)


class StageService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.exchanges = ExchangeRepository(session)
        self.participants = ParticipantRepository(session)
        self.users = UserRepository(session)
        self.permissions = PermissionService(session)
        self.notifications = NotificationService(session)
        self.audit = AuditService(session)

    @staticmethod
    def authority_blocker(user: User, access: ExchangeAccess) -> str | None:
        if access.is_system_admin:
            return None
        if user.role != Role.COORDINATOR.value or access.role != "coordinator":
            return "Only an admin or the exchange coordinator can advance stages"
        if not access.has("can_edit_timeline"):
            return "Missing permission: can_edit_timeline"
        return None

    def advance_blocker(
        self, user: User, exchange: Exchange, access: ExchangeAccess
    ) -> str | None:
        """Reason the user cannot advance the exchange now, or None."""
        current = parse_stage(exchange.stage)
        if current in TERMINAL_STAGES or get_next_stage(current) is None:
            return "Exchange is in a final stage"

        authority = self.authority_blocker(user, access)
        if authority is not None:
            return authority
        definition = get_stage_definition(current)
        if definition.requires_approval and not access.is_system_admin:
            return "Stage requires admin approval"

        missing = [
            check.label
            for check in evaluate_required_tasks(exchange)
            if check.required and not check.satisfied
        ]
        if missing:
            return f"Incomplete required tasks: {', '.join(missing)}"
        return None

    async def get_status(
        self, exchange_id: uuid.UUID, actor: User, context: RequestContext = EMPTY_CONTEXT
    ) -> StageStatusRead:
        exchange, access = await self.permissions.require_exchange_permission(
            actor, exchange_id, "can_view_overview", context=context
        )
        now = utcnow()
        definition = get_stage_definition(exchange.stage)
        checks = evaluate_required_tasks(exchange)
        blocker = self.advance_blocker(actor, exchange, access)
        next_stage = get_next_stage(exchange.stage)
        days_in_stage = _days_between(exchange.stage_changed_at, now)
        history = await self.exchanges.stage_history(exchange.id)

        return StageStatusRead(
            exchange_id=exchange.id,
            current_stage=definition_to_read(definition),
            checks=[
                TaskCheckRead(
                    id=check.id,
                    label=check.label,
                    description=check.description,
                    required=check.required,
                    satisfied=check.satisfied,
                    source=check.source,
                )
                for check in checks
            ],
            missing_requirements=missing_required_tasks(exchange),
            can_advance=blocker is None,
            blocked_reason=blocker,
            next_stage=next_stage.value if next_stage else None,
            progress_percent=get_progress_percent(exchange.stage),
            days_in_stage=days_in_stage,
            is_overdue=bool(
                definition.days_to_complete is not None
                and days_in_stage is not None
                and days_in_stage > definition.days_to_complete
            ),
            history=[StageHistoryRead.model_validate(entry) for entry in history],
        )

    async def advance(
        self,
        exchange_id: uuid.UUID,
        actor: User,
        *,
        notes: str | None = None,
        context: RequestContext = EMPTY_CONTEXT,
    ) -> Exchange:
        """
        Move the exchange to the next stage.

        Raises:
            StageTransitionError: 409 when the exchange cannot advance; details
                list the missing checklist items
        """
        exchange, access = await self.permissions.get_exchange(actor, exchange_id, context=context)
        authority = self.authority_blocker(actor, access)
        if authority is not None:
            await self.permissions.audit_denial(actor, "exchange.advance_stage", str(exchange_id), context)
            raise PermissionError(authority)
        blocker = self.advance_blocker(actor, exchange, access)
        if blocker is not None:
            missing = missing_required_tasks(exchange)
            logger.warning(
                "stage advance blocked exchange_id=%s stage=%s actor=%s reason=%s",
                exchange.id,
                exchange.stage,
                actor.id,
                blocker,
            )
            raise StageTransitionError(
                blocker,
                details={"stage": exchange.stage, "missing_requirements": missing},
            )

        next_stage = get_next_stage(exchange.stage)
        return await self._transition(exchange, next_stage, actor=actor, notes=notes, context=context)

    async def cancel(
        self,
        exchange_id: uuid.UUID,
        actor: User,
        *,
        reason: str,
        context: RequestContext = EMPTY_CONTEXT,
    ) -> Exchange:
        exchange, access = await self.permissions.get_exchange(actor, exchange_id, context=context)
        if not access.is_system_admin and access.role != "coordinator":
            await self.permissions.audit_denial(actor, "exchange.cancel", str(exchange_id), context)
            raise PermissionError("Only an admin or the exchange coordinator can cancel")
        if not can_transition(exchange.stage, ExchangeStage.EXCHANGE_CANCELLED):
            raise StageTransitionError(
                "Exchange is in a final stage", details={"stage": exchange.stage}
            )
        if not reason or not reason.strip():
            raise ValidationError("Cancellation reason is required")

        exchange.cancellation_reason = reason.strip()
        exchange.status = "TERMINATED"
        return await self._transition(
            exchange,
            ExchangeStage.EXCHANGE_CANCELLED,
            actor=actor,
            notes=reason.strip(),
            context=context,
        )

    async def update_checklist(
        self,
        exchange_id: uuid.UUID,
        actor: User,
        items: dict[str, bool],
        context: RequestContext = EMPTY_CONTEXT,
    ) -> Exchange:
        exchange, _ = await self.permissions.require_exchange_permission(
            actor, exchange_id, "can_edit_timeline", context=context
        )
        definition = get_stage_definition(exchange.stage)
        known = {task.id for task in definition.required_tasks}
        unknown = sorted(set(items) - known)
        if unknown:
            raise ValidationError(
                f"Unknown checklist items for stage {exchange.stage}",
                details={"unknown": unknown, "allowed": sorted(known)},
            )

        before = dict(exchange.stage_checklist or {})
        checklist = dict(before)
        checklist.update(items)
        exchange.stage_checklist = checklist
        exchange.last_activity_at = utcnow()
        await self.audit.log(
            action="exchange.checklist_update",
            entity_type="exchange",
            entity_id=exchange.id,
            actor=actor,
            before={"stage": exchange.stage, "checklist": before},
            after={"stage": exchange.stage, "checklist": checklist},
            context=context,
        )
        await self.session.commit()
        return exchange

    async def enter_stage(
        self,
        exchange: Exchange,
        *,
        actor: User | None,
        now: datetime,
    ) -> None:
        """Run the current stage's on-enter actions and notifications."""
        definition = get_stage_definition(exchange.stage)
        await self._run_actions(exchange, definition.actions_for("on_enter"), actor=actor, now=now)
        await self._send_notifications(
            exchange, definition.notifications_for("on_enter"), actor=actor
        )

    async def _transition(
        self,
        exchange: Exchange,
        target: ExchangeStage,
        *,
        actor: User,
        notes: str | None,
        context: RequestContext,
    ) -> Exchange:
        previous = parse_stage(exchange.stage)
        if not can_transition(previous, target):
            raise StageTransitionError(
                f"Cannot move from {previous.value} to {target.value}",
                details={"stage": previous.value, "target": target.value},
            )
        now = utcnow()
        previous_definition = get_stage_definition(previous)

        open_entry = await self.exchanges.open_stage_entry(exchange.id)
        if open_entry is not None:
            open_entry.completed_at = now

        if target is not ExchangeStage.EXCHANGE_CANCELLED:
            await self._run_actions(
                exchange, previous_definition.actions_for("on_complete"), actor=actor, now=now
            )
            await self._send_notifications(
                exchange, previous_definition.notifications_for("on_complete"), actor=actor
            )

        exchange.stage = target.value
        exchange.stage_changed_at = now
        exchange.last_activity_at = now
        # Manual marks belong to the stage they were made in
        exchange.stage_checklist = {}
        await self.exchanges.add_stage_entry(
            exchange.id, target.value, changed_by=actor.id, entered_at=now, notes=notes
        )
        await self.enter_stage(exchange, actor=actor, now=now)
        refresh_compliance(exchange, now)

        await self.audit.log(
            action="exchange.stage_change",
            entity_type="exchange",
            entity_id=exchange.id,
            actor=actor,
            before={"stage": previous.value},
            after={"stage": target.value, "status": exchange.status},
            reason=notes,
            context=context,
        )
        await self.session.commit()
        logger.info(
            "stage changed exchange_id=%s from=%s to=%s actor=%s",
            exchange.id,
            previous.value,
            target.value,
            actor.id,
        )
        return exchange

    async def _run_actions(
        self,
        exchange: Exchange,
        actions: list[AutomaticAction],
        *,
        actor: User | None,
        now: datetime,
    ) -> None:
        for action in actions:
            handler = getattr(self, f"_action_{action.id}", None)
            if handler is None:
                logger.debug("no handler for stage action=%s", action.id)
                continue
            await handler(exchange, actor=actor, now=now)
            data = dict(exchange.stage_data or {})
            entry = {"action": action.id, "stage": exchange.stage, "at": now.isoformat()}
            data["actions_run"] = [*data.get("actions_run", []), entry]
            exchange.stage_data = data
            logger.info("stage action ran exchange_id=%s action=%s", exchange.id, action.id)

    async def _action_send_welcome(self, exchange: Exchange, *, actor: User | None, now: datetime) -> None:
        await self.notifications.notify(
            [exchange.client_id],
            title="Welcome",
            message=f"Welcome to your 1031 exchange {exchange.exchange_number}",
            type=STAGE_NOTIFICATION_TYPE,
            exchange_id=exchange.id,
        )

    async def _action_notify_sale_complete(
        self, exchange: Exchange, *, actor: User | None, now: datetime
    ) -> None:
        data = dict(exchange.stage_data or {})
        data.setdefault("sale_closed_at", now.isoformat())
        exchange.stage_data = data

    async def _action_start_45_day_clock(
        self, exchange: Exchange, *, actor: User | None, now: datetime
    ) -> None:
        exchange.day_45_start_date = now
        exchange.identification_deadline = now + IDENTIFICATION_PERIOD
        exchange.status = "45D"

    async def _action_start_180_day_clock(
        self, exchange: Exchange, *, actor: User | None, now: datetime
    ) -> None:
        if exchange.completion_deadline is None:
            start = as_utc(exchange.day_45_start_date) or now
            exchange.completion_deadline = start + COMPLETION_PERIOD
        exchange.status = "180D"

    async def _action_generate_completion_report(
        self, exchange: Exchange, *, actor: User | None, now: datetime
    ) -> None:
        exchange.status = "COMPLETED"
        exchange.completion_date = now
        data = dict(exchange.stage_data or {})
        data["completion_report_generated_at"] = now.isoformat()
        exchange.stage_data = data

    async def _recipients(self, exchange: Exchange, roles: tuple[str, ...]) -> list[uuid.UUID]:
        recipients: list[uuid.UUID | None] = []
        for role in roles:
            if role in ("client", "all"):
                recipients.append(exchange.client_id)
            if role in ("coordinator", "all"):
                recipients.append(exchange.coordinator_id)
            if role == "admin":
                recipients.extend(admin.id for admin in await self.users.list_active_admins())
            if role == "all":
                participants = await self.participants.list_for_exchange(exchange.id)
                recipients.extend(participant.user_id for participant in participants)
        return [user_id for user_id in recipients if user_id is not None]

    async def _send_notifications(
        self,
        exchange: Exchange,
        notes: list[StageNotification],
        *,
        actor: User | None,
        type: str = STAGE_NOTIFICATION_TYPE,
    ) -> None:
        for note in notes:
            recipients = await self._recipients(exchange, note.recipients)
            await self.notifications.notify(
                recipients,
                title=get_stage_definition(exchange.stage).label,
                message=note.render(exchange.exchange_number),
                type=type,
                exchange_id=exchange.id,
                urgent=note.urgent,
                exclude=actor.id if actor else None,
            )

    async def process_timers(self, now: datetime | None = None) -> int:
        """Send due timer reminders and overdue alerts; returns how many fired."""
        now = utcnow() if now is None else now
        fired = 0
        for definition in STAGE_DEFINITIONS:
            timers = definition.actions_for("on_timer")
            overdue_notes = definition.notifications_for("on_overdue")
            if not timers and not overdue_notes:
                continue
            for exchange in await self.exchanges.list_in_stage(definition.stage.value):
                fired += await self._process_exchange_timers(
                    exchange, definition, timers, overdue_notes, now
                )
        if fired:
            await self.session.commit()
        return fired

    async def _process_exchange_timers(
        self,
        exchange: Exchange,
        definition: StageDefinition,
        timers: list[AutomaticAction],
        overdue_notes: list[StageNotification],
        now: datetime,
    ) -> int:
        data: dict[str, Any] = dict(exchange.stage_data or {})
        sent: list[str] = list(data.get("reminders_sent", []))
        days_in_stage = _days_between(exchange.stage_changed_at, now)
        if days_in_stage is None:
            return 0

        # Identification reminders count from the start of the 45-day period
        clock_days = days_in_stage
        if definition.stage is ExchangeStage.IDENTIFICATION_OPEN and exchange.day_45_start_date:
            clock_days = _days_between(exchange.day_45_start_date, now) or 0

        fired = 0
        for action in timers:
            key = f"{definition.stage.value}:{action.id}"
            if key in sent or action.delay_days is None or clock_days < action.delay_days:
                continue
            recipients = [exchange.client_id]
            if action.urgent:
                recipients.append(exchange.coordinator_id)
            await self.notifications.notify(
                recipients,
                title=action.label,
                message=action.message or action.label,
                type=REMINDER_NOTIFICATION_TYPE,
                exchange_id=exchange.id,
                urgent=action.urgent,
            )
            sent.append(key)
            fired += 1

        overdue_key = f"{definition.stage.value}:overdue"
        if (
            overdue_notes
            and definition.days_to_complete is not None
            and days_in_stage > definition.days_to_complete
            and overdue_key not in sent
        ):
            await self._send_notifications(
                exchange, overdue_notes, actor=None, type=REMINDER_NOTIFICATION_TYPE
            )
            sent.append(overdue_key)
            fired += 1

        if fired:
            data["reminders_sent"] = sent
            exchange.stage_data = data
            await self.audit.log(
                action="exchange.stage_reminder",
                entity_type="exchange",
                entity_id=exchange.id,
                actor_type="system",
                after={"stage": exchange.stage, "reminders_sent": sent},
            )
            logger.info(
                "stage reminders sent exchange_id=%s stage=%s count=%d",
                exchange.id,
                exchange.stage,
                fired,
            )
        return fired


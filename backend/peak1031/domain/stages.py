"""
Exchange stage catalog.

Stages form a linear workflow. ``EXCHANGE_CANCELLED`` is a terminal side
stage that is never reached by normal advancement. Each stage lists the
checklist items that must be satisfied before leaving it, the automatic
actions fired on entering or completing it, and the notifications sent to
exchange parties.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Final, Literal, Mapping


class ExchangeStage(str, Enum):
    EXCHANGE_CREATED = "EXCHANGE_CREATED"
    ONBOARDING_PENDING = "ONBOARDING_PENDING"
    SALES_CLOSED = "SALES_CLOSED"
    FUNDS_RECEIVED = "FUNDS_RECEIVED"
    IDENTIFICATION_OPEN = "IDENTIFICATION_OPEN"
    PROPERTY_IDENTIFIED = "PROPERTY_IDENTIFIED"
    UNDER_CONTRACT = "UNDER_CONTRACT"
    EXCHANGE_COMPLETED = "EXCHANGE_COMPLETED"
    CLOSEOUT_ARCHIVED = "CLOSEOUT_ARCHIVED"
    EXCHANGE_CANCELLED = "EXCHANGE_CANCELLED"


ActionTrigger = Literal["on_enter", "on_complete", "on_timer"]
NotificationTrigger = Literal["on_enter", "on_complete", "on_overdue"]
Recipient = Literal["client", "coordinator", "admin", "all"]

Validator = Callable[[Any], bool]


def _stage_flag(name: str) -> Validator:
    def check(exchange: Any) -> bool:
        data = getattr(exchange, "stage_data", None) or {}
        return bool(data.get(name))

    return check


def _has_attr(name: str) -> Validator:
    def check(exchange: Any) -> bool:
        return bool(getattr(exchange, name, None))

    return check


def _always(_exchange: Any) -> bool:
    return True


@dataclass(frozen=True)
class RequiredTask:
    id: str
    label: str
    description: str
    required: bool
    validator: Validator


@dataclass(frozen=True)
class AutomaticAction:
    id: str
    label: str
    trigger: ActionTrigger
    delay_days: int | None = None
    message: str | None = None
    urgent: bool = False


@dataclass(frozen=True)
class StageNotification:
    trigger: NotificationTrigger
    recipients: tuple[Recipient, ...]
    template: str
    urgent: bool = False

    def render(self, exchange_number: str) -> str:
        return self.template.replace("{{exchangeNumber}}", exchange_number)


@dataclass(frozen=True)
class StageDefinition:
    stage: ExchangeStage
    label: str
    description: str
    auto_advance: bool
    requires_approval: bool
    days_to_complete: int | None = None
    required_tasks: tuple[RequiredTask, ...] = ()
    automatic_actions: tuple[AutomaticAction, ...] = ()
    notifications: tuple[StageNotification, ...] = field(default_factory=tuple)

    def actions_for(self, trigger: ActionTrigger) -> list[AutomaticAction]:
        return [action for action in self.automatic_actions if action.trigger == trigger]

    def notifications_for(self, trigger: NotificationTrigger) -> list[StageNotification]:
        return [note for note in self.notifications if note.trigger == trigger]


STAGE_DEFINITIONS: Final[tuple[StageDefinition, ...]] = (
    StageDefinition(
        stage=ExchangeStage.EXCHANGE_CREATED,
        label="Exchange Created",
        description="Initial exchange record created",
        auto_advance=True,
        requires_approval=False,
        required_tasks=(
            RequiredTask(
                "client_assigned", "Client Assigned",
                "Exchange must have a client assigned", True, _has_attr("client_id"),
            ),
            RequiredTask(
                "coordinator_assigned", "Coordinator Assigned",
                "Exchange must have a coordinator", False, _has_attr("coordinator_id"),
            ),
        ),
        automatic_actions=(
            AutomaticAction("send_welcome", "Send Welcome Email", "on_enter"),
        ),
        notifications=(
            StageNotification(
                "on_enter", ("client", "coordinator"),
                "Exchange {{exchangeNumber}} has been created",
            ),
        ),
    ),
    StageDefinition(
        stage=ExchangeStage.ONBOARDING_PENDING,
        label="Onboarding Pending",
        description="Client registration and initial documents",
        auto_advance=True,
        requires_approval=False,
        days_to_complete=3,
        required_tasks=(
            RequiredTask(
                "client_registered", "Client Registration Complete",
                "Client has completed registration form", True, _stage_flag("client_registered"),
            ),
            RequiredTask(
                "agreement_signed", "Exchange Agreement Signed",
                "Client has signed the exchange agreement", True, _stage_flag("agreement_signed"),
            ),
            RequiredTask(
                "initial_docs", "Initial Documents Uploaded",
                "Required onboarding documents uploaded", True, _stage_flag("initial_docs_uploaded"),
            ),
        ),
        automatic_actions=(
            AutomaticAction(
                "reminder_registration", "Send Registration Reminder", "on_timer",
                delay_days=1,
                message="Please complete your exchange registration",
            ),
        ),
        notifications=(
            StageNotification(
                "on_overdue", ("coordinator", "admin"),
                "Client onboarding overdue for {{exchangeNumber}}", urgent=True,
            ),
        ),
    ),
    StageDefinition(
        stage=ExchangeStage.SALES_CLOSED,
        label="Sales Closed",
        description="Relinquished property sale has closed",
        auto_advance=True,
        requires_approval=False,
        days_to_complete=1,
        required_tasks=(
            RequiredTask(
                "sale_completed", "Sale Completed",
                "Relinquished property sale has closed", True, _stage_flag("sale_completed"),
            ),
            RequiredTask(
                "proceeds_available", "Proceeds Available",
                "Sale proceeds are available for exchange", True, _stage_flag("proceeds_available"),
            ),
        ),
        automatic_actions=(
            AutomaticAction("notify_sale_complete", "Notify Sale Complete", "on_enter"),
        ),
        notifications=(
            StageNotification(
                "on_enter", ("all",),
                "Sale closed for {{exchangeNumber}} - exchange can proceed",
            ),
        ),
    ),
    StageDefinition(
        stage=ExchangeStage.FUNDS_RECEIVED,
        label="Funds Received",
        description="Funds confirmed in QI account",
        auto_advance=True,
        requires_approval=False,
        required_tasks=(
            RequiredTask(
                "funds_confirmed", "Funds Confirmed",
                "Funds received and confirmed in QI account", True, _stage_flag("funds_received"),
            ),
            RequiredTask(
                "amount_verified", "Amount Verified",
                "Received amount matches expected proceeds", True, _stage_flag("amount_verified"),
            ),
        ),
        automatic_actions=(
            AutomaticAction("start_45_day_clock", "Start 45-Day Clock", "on_complete"),
        ),
        notifications=(
            StageNotification(
                "on_complete", ("all",),
                "Funds received! 45-day identification period has begun",
            ),
        ),
    ),
    StageDefinition(
        stage=ExchangeStage.IDENTIFICATION_OPEN,
        label="45-Day Identification",
        description="Client has 45 days to identify replacement properties",
        auto_advance=False,
        requires_approval=False,
        days_to_complete=45,
        required_tasks=(
            RequiredTask(
                "property_search", "Property Search Active",
                "Client is actively searching for properties", False, _always,
            ),
            RequiredTask(
                "identification_form", "Identification Form Ready",
                "Property identification form prepared", True,
                _stage_flag("identification_form_ready"),
            ),
        ),
        automatic_actions=(
            AutomaticAction(
                "day_30_reminder", "30-Day Reminder", "on_timer",
                delay_days=15,
                message="30 days remaining to identify replacement properties!",
            ),
            AutomaticAction(
                "day_40_urgent", "40-Day Urgent Alert", "on_timer",
                delay_days=40,
                message="URGENT: Only 5 days left to identify properties!",
                urgent=True,
            ),
        ),
        notifications=(
            StageNotification(
                "on_enter", ("client",),
                "45-day identification period has started",
            ),
        ),
    ),
    StageDefinition(
        stage=ExchangeStage.PROPERTY_IDENTIFIED,
        label="Property Identified",
        description="Replacement properties officially identified",
        auto_advance=True,
        requires_approval=False,
        required_tasks=(
            RequiredTask(
                "properties_documented", "Properties Documented",
                "All identified properties properly documented", True,
                _stage_flag("properties_identified"),
            ),
            RequiredTask(
                "identification_submitted", "Identification Submitted",
                "Formal identification submitted before deadline", True,
                _stage_flag("identification_submitted"),
            ),
        ),
        automatic_actions=(
            AutomaticAction("start_180_day_clock", "Start 180-Day Clock", "on_enter"),
        ),
        notifications=(
            StageNotification(
                "on_complete", ("all",),
                "Properties identified! 180-day exchange period continues",
            ),
        ),
    ),
    StageDefinition(
        stage=ExchangeStage.UNDER_CONTRACT,
        label="Under Contract",
        description="Purchase agreement executed for replacement property",
        auto_advance=False,
        requires_approval=False,
        required_tasks=(
            RequiredTask(
                "purchase_agreement", "Purchase Agreement Executed",
                "Signed purchase agreement for replacement property", True,
                _stage_flag("purchase_agreement_signed"),
            ),
            RequiredTask(
                "earnest_money", "Earnest Money Deposited",
                "Earnest money deposit made", True, _stage_flag("earnest_money_deposited"),
            ),
            RequiredTask(
                "closing_scheduled", "Closing Scheduled",
                "Closing date scheduled with title company", True,
                _stage_flag("closing_scheduled"),
            ),
        ),
        notifications=(
            StageNotification(
                "on_enter", ("coordinator",),
                "Exchange {{exchangeNumber}} is under contract",
            ),
        ),
    ),
    StageDefinition(
        stage=ExchangeStage.EXCHANGE_COMPLETED,
        label="Exchange Completed",
        description="Transaction finalized, replacement property closed",
        auto_advance=True,
        requires_approval=False,
        required_tasks=(
            RequiredTask(
                "closing_confirmed", "Closing Confirmed",
                "Replacement property closing confirmed", True, _stage_flag("closing_confirmed"),
            ),
            RequiredTask(
                "final_docs", "Final Documents Received",
                "All closing documents received", True, _stage_flag("final_docs_received"),
            ),
        ),
        automatic_actions=(
            AutomaticAction(
                "generate_completion_report", "Generate Completion Report", "on_enter",
            ),
        ),
        notifications=(
            StageNotification(
                "on_enter", ("all",),
                "Congratulations! Exchange {{exchangeNumber}} completed successfully",
            ),
        ),
    ),
    StageDefinition(
        stage=ExchangeStage.CLOSEOUT_ARCHIVED,
        label="Closeout & Archived",
        description="Tax documents generated and exchange archived",
        auto_advance=False,
        requires_approval=False,
        required_tasks=(
            RequiredTask(
                "tax_packet", "Tax Packet Generated",
                "CPA tax packet created and distributed", True,
                _stage_flag("tax_packet_generated"),
            ),
            RequiredTask(
                "archived", "Exchange Archived",
                "All documents archived for compliance", True, _stage_flag("archived"),
            ),
        ),
        notifications=(
            StageNotification(
                "on_complete", ("client",),
                "Tax documents ready for exchange {{exchangeNumber}}",
            ),
        ),
    ),
    StageDefinition(
        stage=ExchangeStage.EXCHANGE_CANCELLED,
        label="Exchange Cancelled",
        description="Exchange failed or cancelled",
        auto_advance=False,
        requires_approval=True,
        required_tasks=(
            RequiredTask(
                "cancellation_reason", "Cancellation Documented",
                "Reason for cancellation documented", True, _has_attr("cancellation_reason"),
            ),
            RequiredTask(
                "funds_returned", "Funds Returned",
                "Any held funds returned to client", True, _stage_flag("funds_returned"),
            ),
        ),
        notifications=(
            StageNotification(
                "on_enter", ("all",),
                "Exchange {{exchangeNumber}} has been cancelled", urgent=True,
            ),
        ),
    ),
)

_BY_STAGE: Final[dict[ExchangeStage, StageDefinition]] = {
    definition.stage: definition for definition in STAGE_DEFINITIONS
}

# Normal progression, cancelled excluded
PROGRESSION: Final[tuple[ExchangeStage, ...]] = tuple(
    definition.stage
    for definition in STAGE_DEFINITIONS
    if definition.stage is not ExchangeStage.EXCHANGE_CANCELLED
)

TERMINAL_STAGES: Final[frozenset[ExchangeStage]] = frozenset({
    ExchangeStage.CLOSEOUT_ARCHIVED,
    ExchangeStage.EXCHANGE_CANCELLED,
})

# Written by stage actions and timers, never by callers
RESERVED_STAGE_DATA_KEYS: Final[frozenset[str]] = frozenset({
    "actions_run",
    "reminders_sent",
    "sale_closed_at",
    "completion_report_generated_at",
})


def parse_stage(value: str | ExchangeStage) -> ExchangeStage:
    try:
        return ExchangeStage(value)
    except ValueError:
        raise ValueError(f"Unknown exchange stage '{value}'") from None


def get_stage_definition(stage: str | ExchangeStage) -> StageDefinition:
    return _BY_STAGE[parse_stage(stage)]


def get_next_stage(stage: str | ExchangeStage) -> ExchangeStage | None:
    current = parse_stage(stage)
    if current not in PROGRESSION:
        return None
    index = PROGRESSION.index(current)
    if index == len(PROGRESSION) - 1:
        return None
    return PROGRESSION[index + 1]


def can_transition(current: str | ExchangeStage, target: str | ExchangeStage) -> bool:
    """Only the next stage in order, or cancellation from a non-terminal stage."""
    current_stage = parse_stage(current)
    target_stage = parse_stage(target)
    if target_stage is ExchangeStage.EXCHANGE_CANCELLED:
        return current_stage not in TERMINAL_STAGES
    return get_next_stage(current_stage) is target_stage


def get_progress_percent(stage: str | ExchangeStage) -> int:
    current = parse_stage(stage)
    if current not in PROGRESSION:
        return 0
    index = PROGRESSION.index(current)
    return round((index + 1) / len(PROGRESSION) * 100)


@dataclass(frozen=True)
class TaskCheck:
    id: str
    label: str
    description: str
    required: bool
    satisfied: bool
    source: Literal["automatic", "manual", "pending"]


def evaluate_required_tasks(
    exchange: Any, checklist: Mapping[str, bool] | None = None
) -> list[TaskCheck]:
    """Evaluate the current stage's checklist against the exchange."""
    definition = get_stage_definition(exchange.stage)
    marks = checklist if checklist is not None else (exchange.stage_checklist or {})
    results: list[TaskCheck] = []
    for task in definition.required_tasks:
        if task.validator(exchange):
            source: Literal["automatic", "manual", "pending"] = "automatic"
        elif marks.get(task.id):
            source = "manual"
        else:
            source = "pending"
        results.append(
            TaskCheck(
                id=task.id,
                label=task.label,
                description=task.description,
                required=task.required,
                satisfied=source != "pending",
                source=source,
            )
        )
    return results


def missing_required_tasks(exchange: Any) -> list[str]:
    return [
        check.id for check in evaluate_required_tasks(exchange)
        if check.required and not check.satisfied
    ]

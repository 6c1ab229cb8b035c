from types import SimpleNamespace

import pytest

from peak1031.domain.stages import (
    PROGRESSION,
    ExchangeStage,
    can_transition,
    evaluate_required_tasks,
    get_next_stage,
    get_progress_percent,
    get_stage_definition,
    missing_required_tasks,
    parse_stage,
)


def make_exchange(stage: ExchangeStage, **values) -> SimpleNamespace:
    defaults = {
        "stage": stage.value,
        "stage_data": {},
        "stage_checklist": {},
        "client_id": None,
        "coordinator_id": None,
        "cancellation_reason": None,
    }
    defaults.update(values)
    return SimpleNamespace(**defaults)


def test_progression_excludes_cancelled() -> None:
    assert len(PROGRESSION) == 9
    assert ExchangeStage.EXCHANGE_CANCELLED not in PROGRESSION
    assert PROGRESSION[0] is ExchangeStage.EXCHANGE_CREATED
    assert PROGRESSION[-1] is ExchangeStage.CLOSEOUT_ARCHIVED


def test_next_stage() -> None:
    assert get_next_stage("FUNDS_RECEIVED") is ExchangeStage.IDENTIFICATION_OPEN
    assert get_next_stage(ExchangeStage.CLOSEOUT_ARCHIVED) is None
    assert get_next_stage(ExchangeStage.EXCHANGE_CANCELLED) is None


def test_transitions_only_move_forward_one_step() -> None:
    assert can_transition("EXCHANGE_CREATED", "ONBOARDING_PENDING") is True
    assert can_transition("EXCHANGE_CREATED", "SALES_CLOSED") is False
    assert can_transition("SALES_CLOSED", "ONBOARDING_PENDING") is False


def test_cancellation_allowed_from_non_terminal_stages() -> None:
    assert can_transition("UNDER_CONTRACT", "EXCHANGE_CANCELLED") is True
    assert can_transition("CLOSEOUT_ARCHIVED", "EXCHANGE_CANCELLED") is False
    assert can_transition("EXCHANGE_CANCELLED", "EXCHANGE_CANCELLED") is False


def test_unknown_stage_is_rejected() -> None:
    with pytest.raises(ValueError, match="Unknown exchange stage 'LIMBO'"):
        parse_stage("LIMBO")


@pytest.mark.parametrize(
    ("stage", "percent"),
    [
        ("EXCHANGE_CREATED", 11),
        ("FUNDS_RECEIVED", 44),
        ("IDENTIFICATION_OPEN", 56),
        ("CLOSEOUT_ARCHIVED", 100),
        ("EXCHANGE_CANCELLED", 0),
    ],
)
def test_progress_percent(stage: str, percent: int) -> None:
    assert get_progress_percent(stage) == percent


def test_created_stage_requires_client() -> None:
    exchange = make_exchange(ExchangeStage.EXCHANGE_CREATED)

    assert missing_required_tasks(exchange) == ["client_assigned"]

    exchange.client_id = "client"
    assert missing_required_tasks(exchange) == []


def test_checklist_sources() -> None:
    exchange = make_exchange(
        ExchangeStage.ONBOARDING_PENDING,
        stage_data={"client_registered": True},
        stage_checklist={"agreement_signed": True},
    )

    checks = {check.id: check for check in evaluate_required_tasks(exchange)}

    assert checks["client_registered"].source == "automatic"
    assert checks["agreement_signed"].source == "manual"
    assert checks["initial_docs"].source == "pending"
    assert checks["initial_docs"].satisfied is False
    assert missing_required_tasks(exchange) == ["initial_docs"]


def test_optional_tasks_never_block() -> None:
    exchange = make_exchange(
        ExchangeStage.IDENTIFICATION_OPEN, stage_data={"identification_form_ready": True}
    )

    assert missing_required_tasks(exchange) == []


def test_stage_notifications_render_exchange_number() -> None:
    definition = get_stage_definition(ExchangeStage.EXCHANGE_CREATED)
    [note] = definition.notifications_for("on_enter")

    assert note.render("EX-2026-0001") == "Exchange EX-2026-0001 has been created"
    assert set(note.recipients) == {"client", "coordinator"}


def test_timer_actions_carry_delay() -> None:
    definition = get_stage_definition(ExchangeStage.IDENTIFICATION_OPEN)
    timers = definition.actions_for("on_timer")

    assert [action.delay_days for action in timers] == [15, 40]
    assert timers[1].urgent is True

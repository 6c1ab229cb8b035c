from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from peak1031.domain.deadlines import (
    completion_deadline_from,
    compute_compliance_status,
    days_remaining,
    identification_deadline_from,
    refresh_compliance,
)

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


def deadlines(start: datetime) -> dict:
    return {
        "identification_deadline": identification_deadline_from(start),
        "completion_deadline": completion_deadline_from(start),
    }


def test_statutory_periods() -> None:
    start = datetime(2026, 1, 1, tzinfo=timezone.utc)

    assert identification_deadline_from(start) == datetime(2026, 2, 15, tzinfo=timezone.utc)
    assert completion_deadline_from(start) == datetime(2026, 6, 30, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    ("status", "started_days_ago", "expected"),
    [
        ("45D", 10, "COMPLIANT"),
        ("PENDING", 50, "NON_COMPLIANT"),
        ("45D", 50, "COMPLIANT"),
        ("180D", 160, "AT_RISK"),
        ("180D", 181, "NON_COMPLIANT"),
        ("COMPLETED", 181, "COMPLIANT"),
    ],
)
def test_compliance_status(status: str, started_days_ago: int, expected: str) -> None:
    start = NOW - timedelta(days=started_days_ago)

    result = compute_compliance_status(status=status, now=NOW, **deadlines(start))

    assert result == expected


def test_compliance_requires_both_deadlines() -> None:
    result = compute_compliance_status(
        status="45D",
        identification_deadline=NOW,
        completion_deadline=None,
        now=NOW,
    )

    assert result is None


def test_naive_deadlines_are_treated_as_utc() -> None:
    start = (NOW - timedelta(days=10)).replace(tzinfo=None)

    result = compute_compliance_status(status="45D", now=NOW, **deadlines(start))

    assert result == "COMPLIANT"


def test_days_remaining() -> None:
    assert days_remaining(NOW + timedelta(days=3, hours=2), NOW) == 3
    assert days_remaining(NOW - timedelta(hours=1), NOW) == -1
    assert days_remaining(None, NOW) is None


def test_refresh_compliance_keeps_status_without_deadlines() -> None:
    exchange = SimpleNamespace(
        status="PENDING",
        identification_deadline=None,
        completion_deadline=None,
        compliance_status="PENDING_REVIEW",
    )

    refresh_compliance(exchange, NOW)

    assert exchange.compliance_status == "PENDING_REVIEW"

"""Statutory 1031 deadlines and the compliance status derived from them."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Final

from ..utils.time import as_utc

IDENTIFICATION_PERIOD: Final[timedelta] = timedelta(days=45)
COMPLETION_PERIOD: Final[timedelta] = timedelta(days=180)
AT_RISK_WINDOW: Final[timedelta] = timedelta(days=30)


def identification_deadline_from(start: datetime) -> datetime:
    return start + IDENTIFICATION_PERIOD


def completion_deadline_from(start: datetime) -> datetime:
    return start + COMPLETION_PERIOD


def compute_compliance_status(
    *,
    status: str,
    identification_deadline: datetime | None,
    completion_deadline: datetime | None,
    now: datetime,
) -> str | None:
    """Return the compliance status, or None when deadlines are not set."""
    identification = as_utc(identification_deadline)
    completion = as_utc(completion_deadline)
    if identification is None or completion is None:
        return None

    if now > completion and status != "COMPLETED":
        return "NON_COMPLIANT"
    if now > identification and status == "PENDING":
        return "NON_COMPLIANT"
    if completion - now <= AT_RISK_WINDOW and status != "COMPLETED":
        return "AT_RISK"
    return "COMPLIANT"


def days_remaining(deadline: datetime | None, now: datetime) -> int | None:
    deadline = as_utc(deadline)
    if deadline is None:
        return None
    return (deadline - now).days


def refresh_compliance(exchange: Any, now: datetime) -> None:
    """Recompute ``exchange.compliance_status`` in place when both deadlines exist."""
    status = compute_compliance_status(
        status=exchange.status,
        identification_deadline=exchange.identification_deadline,
        completion_deadline=exchange.completion_deadline,
        now=now,
    )
    if status is not None:
        exchange.compliance_status = status

"""
Per-exchange permission resolution.

A user's permissions on one exchange come from, in order of precedence:

1. the system ``admin`` role, which grants every flag;
2. the participant's explicit ``permissions`` overrides;
3. the participant's ``access_level`` template, when one is set;
4. the default flags of the user's role on the exchange.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Final, Mapping

PERMISSION_FLAGS: Final[tuple[str, ...]] = (
    "can_edit",
    "can_delete",
    "can_add_participants",
    "can_upload_documents",
    "can_send_messages",
    "can_view_overview",
    "can_view_messages",
    "can_view_tasks",
    "can_create_tasks",
    "can_edit_tasks",
    "can_assign_tasks",
    "can_view_documents",
    "can_edit_documents",
    "can_delete_documents",
    "can_view_participants",
    "can_manage_participants",
    "can_view_financial",
    "can_edit_financial",
    "can_view_timeline",
    "can_edit_timeline",
    "can_view_reports",
)

ACCESS_LEVELS: Final[tuple[str, ...]] = ("none", "read", "write", "admin")

TAB_PERMISSIONS: Final[dict[str, str]] = {
    "overview": "can_view_overview",
    "messages": "can_view_messages",
    "tasks": "can_view_tasks",
    "documents": "can_view_documents",
    "participants": "can_view_participants",
    "financial": "can_view_financial",
    "reports": "can_view_reports",
}


def _flags(granted: set[str] | frozenset[str]) -> dict[str, bool]:
    return {flag: flag in granted for flag in PERMISSION_FLAGS}


_ALL: Final[frozenset[str]] = frozenset(PERMISSION_FLAGS)
_VIEW_ONLY: Final[frozenset[str]] = frozenset(
    flag for flag in PERMISSION_FLAGS if flag.startswith("can_view_")
)
_MANAGING: Final[frozenset[str]] = _ALL - {"can_delete", "can_delete_documents"}

ROLE_DEFAULTS: Final[dict[str, dict[str, bool]]] = {
    "coordinator": _flags(_MANAGING),
    "client": _flags(_MANAGING),
    "third_party": _flags({"can_view_overview"}),
    "agency": _flags({"can_view_overview"}),
}

ACCESS_LEVEL_TEMPLATES: Final[dict[str, dict[str, bool]]] = {
    "none": _flags(set()),
    "read": _flags(_VIEW_ONLY),
    "write": _flags(_ALL - {"can_delete", "can_delete_documents", "can_manage_participants"}),
    "admin": _flags(_ALL),
}


def validate_access_level(access_level: str | None) -> None:
    if access_level is not None and access_level not in ACCESS_LEVELS:
        raise ValueError(
            f"Invalid access level '{access_level}'. Must be one of: {', '.join(ACCESS_LEVELS)}"
        )


def validate_overrides(overrides: Mapping[str, object]) -> dict[str, bool]:
    unknown = sorted(set(overrides) - set(PERMISSION_FLAGS))
    if unknown:
        raise ValueError(f"Unknown permission flags: {', '.join(unknown)}")
    cleaned: dict[str, bool] = {}
    for flag, value in overrides.items():
        if not isinstance(value, bool):
            raise ValueError(f"Permission flag '{flag}' must be a boolean")
        cleaned[flag] = value
    return cleaned


def role_defaults(role: str | None) -> dict[str, bool]:
    if role is None:
        return _flags(set())
    return dict(ROLE_DEFAULTS.get(role, _flags(set())))


@dataclass
class ExchangeAccess:
    """Resolved view of one user's rights on one exchange."""

    permissions: dict[str, bool]
    role: str | None = None
    access_level: str | None = None
    is_system_admin: bool = False
    overrides: dict[str, bool] = field(default_factory=dict)

    def has(self, flag: str) -> bool:
        if flag not in PERMISSION_FLAGS:
            raise ValueError(f"Unknown permission flag '{flag}'")
        return self.permissions.get(flag, False)

    @property
    def tabs(self) -> list[str]:
        return [tab for tab, flag in TAB_PERMISSIONS.items() if self.permissions.get(flag)]


def resolve_permissions(
    *,
    system_role: str,
    exchange_role: str | None,
    access_level: str | None = None,
    overrides: Mapping[str, bool] | None = None,
) -> ExchangeAccess:
    """Combine role defaults, access level and overrides into one flag set."""
    if system_role == "admin":
        return ExchangeAccess(
            permissions=_flags(_ALL),
            role="admin",
            access_level="admin",
            is_system_admin=True,
        )

    if access_level is not None:
        validate_access_level(access_level)
        permissions = dict(ACCESS_LEVEL_TEMPLATES[access_level])
    else:
        permissions = role_defaults(exchange_role)

    applied = validate_overrides(overrides or {})
    permissions.update(applied)
    return ExchangeAccess(
        permissions=permissions,
        role=exchange_role,
        access_level=access_level,
        overrides=applied,
    )

"""
System role policy.

Every role maps to an explicit set of ``resource.action`` permissions plus a
view scope per resource. There are no wildcard grants: a permission exists
only when it is listed here.
"""
from __future__ import annotations

from enum import Enum
from typing import Final


class ActorType(str, Enum):
    USER = "user"
    SYSTEM = "system"
    ANONYMOUS = "anonymous"


ALLOWED_ACTOR_TYPES: Final[frozenset[str]] = frozenset({"user", "system", "anonymous"})


class Role(str, Enum):
    ADMIN = "admin"
    COORDINATOR = "coordinator"
    CLIENT = "client"
    THIRD_PARTY = "third_party"
    AGENCY = "agency"


ALL_ROLES: Final[frozenset[str]] = frozenset(role.value for role in Role)


class ViewScope(str, Enum):
    ALL = "all"
    MANAGED = "managed"
    ASSIGNED = "assigned"
    PARTICIPATING = "participating"
    NONE = "none"


EXCHANGE_PERMISSIONS: Final[frozenset[str]] = frozenset({
    "exchanges.view",
    "exchanges.create",
    "exchanges.edit",
    "exchanges.delete",
    "exchanges.assign_users",
    "exchanges.manage_status",
})

TASK_PERMISSIONS: Final[frozenset[str]] = frozenset({
    "tasks.view",
    "tasks.create",
    "tasks.edit",
    "tasks.delete",
    "tasks.assign",
})

DOCUMENT_PERMISSIONS: Final[frozenset[str]] = frozenset({
    "documents.view",
    "documents.upload",
    "documents.download",
    "documents.delete",
    "documents.manage_permissions",
})

MESSAGE_PERMISSIONS: Final[frozenset[str]] = frozenset({
    "messages.view",
    "messages.send",
})

TEMPLATE_PERMISSIONS: Final[frozenset[str]] = frozenset({
    "templates.view",
    "templates.manage",
    "templates.generate",
})

USER_PERMISSIONS: Final[frozenset[str]] = frozenset({
    "users.view",
    "users.create",
    "users.edit",
    "users.delete",
    "users.manage_roles",
})

SYSTEM_PERMISSIONS: Final[frozenset[str]] = frozenset({
    "system.view_audit",
    "system.manage_settings",
    "system.view_analytics",
    "system.run_jobs",
})

ALLOWED_PERMISSIONS: Final[frozenset[str]] = (
    EXCHANGE_PERMISSIONS
    | TASK_PERMISSIONS
    | DOCUMENT_PERMISSIONS
    | MESSAGE_PERMISSIONS
    | TEMPLATE_PERMISSIONS
    | USER_PERMISSIONS
    | SYSTEM_PERMISSIONS
)


ROLE_PERMISSIONS: Final[dict[str, frozenset[str]]] = {
    Role.ADMIN.value: ALLOWED_PERMISSIONS,
    Role.COORDINATOR.value: frozenset({
        "exchanges.view",
        "exchanges.create",
        "exchanges.edit",
        "exchanges.assign_users",
        "exchanges.manage_status",
        "tasks.view",
        "tasks.create",
        "tasks.edit",
        "tasks.delete",
        "tasks.assign",
        "documents.view",
        "documents.upload",
        "documents.download",
        "documents.delete",
        "documents.manage_permissions",
        "messages.view",
        "messages.send",
        "templates.view",
        "templates.manage",
        "templates.generate",
        "system.view_audit",
        "system.view_analytics",
    }),
    Role.CLIENT.value: frozenset({
        "exchanges.view",
        "tasks.view",
        "tasks.edit",
        "documents.view",
        "documents.upload",
        "documents.download",
        "messages.view",
        "messages.send",
    }),
    Role.THIRD_PARTY.value: frozenset({
        "exchanges.view",
        "documents.view",
        "documents.download",
        "messages.view",
        "messages.send",
    }),
    Role.AGENCY.value: frozenset({
        "exchanges.view",
        "tasks.view",
        "tasks.edit",
        "documents.view",
        "documents.upload",
        "documents.download",
        "messages.view",
        "messages.send",
        "system.view_analytics",
    }),
}


ROLE_VIEW_SCOPES: Final[dict[str, dict[str, ViewScope]]] = {
    Role.ADMIN.value: {
        "exchanges": ViewScope.ALL,
        "tasks": ViewScope.ALL,
        "documents": ViewScope.ALL,
        "messages": ViewScope.ALL,
    },
    Role.COORDINATOR.value: {
        "exchanges": ViewScope.MANAGED,
        "tasks": ViewScope.MANAGED,
        "documents": ViewScope.MANAGED,
        "messages": ViewScope.MANAGED,
    },
    Role.CLIENT.value: {
        "exchanges": ViewScope.ASSIGNED,
        "tasks": ViewScope.ASSIGNED,
        "documents": ViewScope.ASSIGNED,
        "messages": ViewScope.ASSIGNED,
    },
    Role.THIRD_PARTY.value: {
        "exchanges": ViewScope.PARTICIPATING,
        "tasks": ViewScope.NONE,
        "documents": ViewScope.PARTICIPATING,
        "messages": ViewScope.PARTICIPATING,
    },
    Role.AGENCY.value: {
        "exchanges": ViewScope.PARTICIPATING,
        "tasks": ViewScope.ASSIGNED,
        "documents": ViewScope.PARTICIPATING,
        "messages": ViewScope.PARTICIPATING,
    },
}


def validate_actor_type(actor_type: str) -> None:
    """
    Raises:
        ValueError: If actor_type is not one of 'user', 'system', 'anonymous'
    """
    if actor_type not in ALLOWED_ACTOR_TYPES:
        raise ValueError(
            f"Invalid actor_type '{actor_type}'. "
            f"Must be one of: {', '.join(sorted(ALLOWED_ACTOR_TYPES))}"
        )


def validate_role(role: str) -> None:
    if role not in ALL_ROLES:
        raise ValueError(
            f"Invalid role '{role}'. Must be one of: {', '.join(sorted(ALL_ROLES))}"
        )


def validate_permission(permission: str) -> None:
    """
    Validate that a permission is explicitly defined.

    Raises:
        ValueError: If the permission is a wildcard or is not defined
    """
    if permission.endswith("*"):
        raise ValueError(f"Wildcard permission '{permission}' is not allowed")
    if permission not in ALLOWED_PERMISSIONS:
        raise ValueError(f"Unknown permission '{permission}'")


def role_has_permission(role: str | None, permission: str) -> bool:
    if role is None:
        return False
    try:
        validate_permission(permission)
    except ValueError:
        return False
    return permission in ROLE_PERMISSIONS.get(role, frozenset())


def get_view_scope(role: str | None, resource: str) -> ViewScope:
    if role is None:
        return ViewScope.NONE
    return ROLE_VIEW_SCOPES.get(role, {}).get(resource, ViewScope.NONE)


def get_role_permissions(role: str) -> list[str]:
    return sorted(ROLE_PERMISSIONS.get(role, frozenset()))

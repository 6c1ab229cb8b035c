import pytest

from peak1031.auth import rbac_contract
from peak1031.auth.rbac_contract import (
    ALLOWED_PERMISSIONS,
    ROLE_PERMISSIONS,
    ViewScope,
    get_view_scope,
    role_has_permission,
    validate_actor_type,
    validate_permission,
)


def test_admin_holds_every_permission() -> None:
    assert ROLE_PERMISSIONS["admin"] == ALLOWED_PERMISSIONS


def test_role_permissions_are_declared() -> None:
    for role, permissions in ROLE_PERMISSIONS.items():
        assert role in rbac_contract.ALL_ROLES
        assert permissions <= ALLOWED_PERMISSIONS, role


def test_no_wildcard_permissions() -> None:
    for permission in ALLOWED_PERMISSIONS:
        assert "*" not in permission
    with pytest.raises(ValueError, match="Wildcard"):
        validate_permission("exchanges.*")


def test_unknown_permission_is_denied() -> None:
    assert role_has_permission("admin", "exchanges.teleport") is False
    assert role_has_permission(None, "exchanges.view") is False


@pytest.mark.parametrize(
    ("role", "permission", "expected"),
    [
        ("coordinator", "exchanges.create", True),
        ("coordinator", "exchanges.delete", False),
        ("coordinator", "system.view_audit", True),
        ("coordinator", "system.run_jobs", False),
        ("client", "tasks.edit", True),
        ("client", "tasks.create", False),
        ("third_party", "messages.send", True),
        ("third_party", "documents.upload", False),
        ("agency", "system.view_analytics", True),
        ("agency", "users.view", False),
    ],
)
def test_role_grants(role: str, permission: str, expected: bool) -> None:
    assert role_has_permission(role, permission) is expected


@pytest.mark.parametrize(
    ("role", "resource", "scope"),
    [
        ("admin", "exchanges", ViewScope.ALL),
        ("coordinator", "documents", ViewScope.MANAGED),
        ("client", "messages", ViewScope.ASSIGNED),
        ("third_party", "tasks", ViewScope.NONE),
        ("agency", "exchanges", ViewScope.PARTICIPATING),
        ("agency", "unknown", ViewScope.NONE),
        (None, "exchanges", ViewScope.NONE),
    ],
)
def test_view_scopes(role: str | None, resource: str, scope: ViewScope) -> None:
    assert get_view_scope(role, resource) is scope


def test_actor_type_validation() -> None:
    validate_actor_type("system")
    with pytest.raises(ValueError, match="Invalid actor_type"):
        validate_actor_type("robot")

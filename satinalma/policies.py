from __future__ import annotations

from typing import Dict, FrozenSet, Iterable, Set

from flask import current_app, has_request_context, session

from satinalma.errors import PermissionError as AppPermissionError


VALID_ROLES: Set[str] = {
    "admin",
    "purchasing_manager",
    "unit_manager",
    "unit_evaluator",
    "warehouse",
    "user",
    "supplier",
}

ALL_PERMISSIONS: FrozenSet[str] = frozenset(
    {
        "request:create",
        "request:read",
        "request:edit",
        "rfq:read",
        "rfq:manage",
        "order:read",
        "order:create",
        "order:edit",
        "order:delete",
        "delivery:read",
        "delivery:create",
        "delivery:edit",
        "supplier:read",
        "supplier:create",
        "supplier:edit",
        "supplier:approve",
        "evaluation:read",
        "evaluation:submit",
        "contract:read",
        "contract:create",
        "contract:edit",
        "invoice:read",
        "invoice:create",
        "invoice:edit",
        "meeting:read",
        "meeting:create",
        "meeting:edit",
        "report:read",
        "settings:edit",
        "jobs:run",
        "approval:read",
        "approval:decide",
        "approval:manage",
        "audit:read",
    }
)

_READ_PERMISSIONS = frozenset(
    permission for permission in ALL_PERMISSIONS if permission.endswith(":read") and permission != "audit:read"
)

ROLE_PERMISSIONS: Dict[str, FrozenSet[str]] = {
    "admin": ALL_PERMISSIONS,
    "purchasing_manager": frozenset(
        ALL_PERMISSIONS - {"settings:edit", "jobs:run", "supplier:approve", "approval:manage", "audit:read"}
    ),
    "unit_manager": frozenset(
        {
            "request:create",
            "request:read",
            "order:read",
            "delivery:read",
            "report:read",
            "meeting:read",
            "approval:read",
            "approval:decide",
        }
    ),
    "unit_evaluator": frozenset(_READ_PERMISSIONS | {"evaluation:submit"}),
    "warehouse": frozenset({"delivery:read", "delivery:create", "delivery:edit", "order:read"}),
    "user": frozenset({"request:create", "request:read", "meeting:read"}),
    "supplier": frozenset(),
}


def normalize_role(role: str | None, default: str = "user") -> str:
    normalized = str(role or "").strip().lower()
    if normalized in VALID_ROLES:
        return normalized
    return default if default in VALID_ROLES else ""


def current_role() -> str:
    if has_request_context() and not bool(current_app.config.get("AUTH_ENABLED", True)):
        return normalize_role(session.get("user_role"), default="admin")
    return normalize_role(session.get("user_role"), default="user")


def permissions_for(role: str | None) -> FrozenSet[str]:
    return ROLE_PERMISSIONS.get(normalize_role(role, default=""), frozenset())


def has_permission(role: str | None, permission: str) -> bool:
    return permission in permissions_for(role)


def normalize_allowed_roles(roles: Iterable[str]) -> Set[str]:
    allowed: Set[str] = set()
    for role in roles:
        normalized = normalize_role(role, default="")
        if normalized:
            allowed.add(normalized)
    return allowed


def require_roles(*allowed_roles: str, role: str | None = None) -> str:
    normalized_role = normalize_role(role, default="user") if role is not None else current_role()
    allowed = normalize_allowed_roles(allowed_roles)
    if not allowed or normalized_role in allowed:
        return normalized_role
    raise AppPermissionError(code="forbidden", critical=False)


def require_permission(permission: str, role: str | None = None) -> str:
    normalized_role = normalize_role(role, default="user") if role is not None else current_role()
    if has_permission(normalized_role, permission):
        return normalized_role
    raise AppPermissionError(
        code="forbidden",
        critical=False,
        log_context=f"role={normalized_role} permission={permission}",
    )

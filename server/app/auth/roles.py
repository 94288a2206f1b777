"""Role catalogue and privilege ordering."""

from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    PARENT = "parent"
    TEACHER = "teacher"
    OFFICE_ADMIN = "officeadmin"
    SUPER_ADMIN = "superadmin"


ROLE_RANKS: dict[Role, int] = {
    Role.PARENT: 1,
    Role.TEACHER: 2,
    Role.OFFICE_ADMIN: 3,
    Role.SUPER_ADMIN: 4,
}

ROLE_LABELS: dict[Role, str] = {
    Role.PARENT: "Parent",
    Role.TEACHER: "Teacher",
    Role.OFFICE_ADMIN: "Office Admin",
    Role.SUPER_ADMIN: "Super Admin",
}

# Where a user lands when a page turns them away.
SAFE_LANDING_ROUTES: dict[Role, str] = {
    Role.PARENT: "/students",
    Role.TEACHER: "/dashboard",
    Role.OFFICE_ADMIN: "/dashboard",
    Role.SUPER_ADMIN: "/dashboard",
}
ANONYMOUS_LANDING_ROUTE = "/"

EDITABLE_ROLES: tuple[Role, ...] = tuple(role for role in Role if role is not Role.SUPER_ADMIN)


def parse_role(value: str | Role) -> Role:
    if isinstance(value, Role):
        return value
    try:
        return Role(value)
    except ValueError as exc:
        raise ValueError(f"Unknown role '{value}'") from exc


def rank(role: Role) -> int:
    return ROLE_RANKS[role]


def at_least(user_role: Role, min_role: Role) -> bool:
    """True when ``user_role`` is as privileged as ``min_role`` or more."""

    return rank(user_role) >= rank(min_role)


def safe_landing_for(role: Role | None) -> str:
    if role is None:
        return ANONYMOUS_LANDING_ROUTE
    return SAFE_LANDING_ROUTES.get(role, ANONYMOUS_LANDING_ROUTE)


READ_ONLY_MESSAGE = "Super Admin permissions cannot be modified"


class ReadOnlyRoleError(ValueError):
    pass


def ensure_editable(role: Role) -> None:
    if role is Role.SUPER_ADMIN:
        raise ReadOnlyRoleError(READ_ONLY_MESSAGE)

"""Baseline grants that hold while no explicit permission row exists."""

from __future__ import annotations

from app.auth.modules import Action, Module
from app.auth.roles import Role

BASE_ENTITLEMENTS: dict[tuple[Role, Module, Action], bool] = {
    (Role.PARENT, Module.STUDENTS, Action.VIEW): True,
    (Role.TEACHER, Module.STUDENTS, Action.VIEW): True,
    (Role.OFFICE_ADMIN, Module.STUDENTS, Action.VIEW): True,
}


def base_entitlement(role: Role, module: Module, action: Action) -> bool | None:
    """Return the override value, or ``None`` when no override is defined."""

    return BASE_ENTITLEMENTS.get((role, module, action))

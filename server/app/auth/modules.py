from __future__ import annotations

from enum import Enum


class Module(str, Enum):
    STUDENTS = "students"
    CLASSES = "classes"
    ATTENDANCE = "attendance"
    BATCHES = "batches"
    ACADEMIC_YEARS = "academic_years"
    FEE_MANAGEMENT = "fee_management"
    FEE_PAYMENTS = "fee_payments"
    EXPENSES = "expenses"
    INVENTORY = "inventory"
    REPORTS = "reports"
    SETTINGS = "settings"
    USER_MANAGEMENT = "user_management"
    ROLE_MANAGEMENT = "role_management"


class Action(str, Enum):
    VIEW = "view"
    CREATE = "create"
    EDIT = "edit"
    DELETE = "delete"


# Each action is stored in exactly one flag column.
ACTION_COLUMNS: dict[Action, str] = {
    Action.VIEW: "can_view",
    Action.CREATE: "can_create",
    Action.EDIT: "can_edit",
    Action.DELETE: "can_delete",
}

FLAG_COLUMNS: tuple[str, ...] = tuple(ACTION_COLUMNS.values())


def parse_module(value: str | Module) -> Module:
    if isinstance(value, Module):
        return value
    try:
        return Module(value)
    except ValueError as exc:
        raise ValueError(f"Unknown module '{value}'") from exc


def parse_action(value: str | Action) -> Action:
    if isinstance(value, Action):
        return value
    try:
        return Action(value)
    except ValueError as exc:
        raise ValueError(f"Unknown action '{value}'") from exc


def format_module(module: Module) -> str:
    return " ".join(word.capitalize() for word in module.value.split("_"))

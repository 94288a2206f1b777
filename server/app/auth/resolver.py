"""Permission resolution over the (role, module) matrix.

Precedence is fixed and must not be reordered:

1. ``superadmin`` is always allowed.
2. An explicit row for (role, module) decides, even when its flag is false.
3. A base entitlement override decides when no row exists.
4. Everything else is denied.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Mapping

from app.auth.modules import ACTION_COLUMNS, Action, Module, parse_module
from app.auth.overrides import base_entitlement
from app.auth.roles import Role, parse_role

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModuleFlags:
    can_view: bool = False
    can_create: bool = False
    can_edit: bool = False
    can_delete: bool = False

    def allows(self, action: Action) -> bool:
        return bool(getattr(self, ACTION_COLUMNS[action]))

    def as_dict(self) -> dict[str, bool]:
        return {column: getattr(self, column) for column in ACTION_COLUMNS.values()}

    @classmethod
    def from_row(cls, row: Any) -> "ModuleFlags":
        return cls(**{column: bool(getattr(row, column)) for column in ACTION_COLUMNS.values()})


FULL_ACCESS = ModuleFlags(can_view=True, can_create=True, can_edit=True, can_delete=True)
NO_ACCESS = ModuleFlags()

IndexKey = tuple[Role, Module]


class PermissionIndex:
    """Explicit permission rows keyed by (role, module)."""

    def __init__(self, entries: Mapping[IndexKey, ModuleFlags] | None = None) -> None:
        self._entries: dict[IndexKey, ModuleFlags] = dict(entries or {})

    @classmethod
    def from_rows(cls, rows: Iterable[Any]) -> "PermissionIndex":
        entries: dict[IndexKey, ModuleFlags] = {}
        for row in rows:
            try:
                key = (parse_role(row.role), parse_module(row.module))
            except ValueError:
                logger.warning(
                    "permission_row_skipped",
                    extra={"role": str(row.role), "permission_module": str(row.module)},
                )
                continue
            entries[key] = ModuleFlags.from_row(row)
        return cls(entries)

    def get(self, role: Role, module: Module) -> ModuleFlags | None:
        return self._entries.get((role, module))

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[IndexKey]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


def resolve(role: Role, module: Module, action: Action, index: PermissionIndex) -> bool:
    if role is Role.SUPER_ADMIN:
        return True

    flags = index.get(role, module)
    if flags is not None:
        return flags.allows(action)

    override = base_entitlement(role, module, action)
    if override is not None:
        return override

    return False


def resolve_flags(role: Role, module: Module, index: PermissionIndex) -> ModuleFlags:
    if role is Role.SUPER_ADMIN:
        return FULL_ACCESS
    values = {column: resolve(role, module, action, index) for action, column in ACTION_COLUMNS.items()}
    return ModuleFlags(**values)


def module_permission_map(role: Role, index: PermissionIndex) -> dict[Module, ModuleFlags]:
    return {module: resolve_flags(role, module, index) for module in Module}

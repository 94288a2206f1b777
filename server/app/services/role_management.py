"""Editing session behind the role management screen.

The session never flips a flag locally: rendered state only changes after the
server acknowledged the write and the role's map was read back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from app.auth.modules import Action, Module, format_module
from app.auth.resolver import NO_ACCESS, ModuleFlags
from app.auth.roles import READ_ONLY_MESSAGE, ROLE_LABELS, ReadOnlyRoleError, Role
from app.services.permissions_client import ModulePermissionCache, PermissionsClient, PermissionsClientError

logger = logging.getLogger(__name__)

LOAD_ERROR_MESSAGE = "Failed to load role permissions. Please try again later."
SUPER_ADMIN_NOTICE = (
    "Super administrators have full access to all modules and features. "
    "These permissions cannot be modified."
)


@dataclass(frozen=True)
class PendingToggle:
    module: Module
    action: Action
    value: bool


@dataclass(frozen=True)
class ModuleRow:
    module: Module
    label: str
    flags: ModuleFlags


class RoleManagementSession:
    def __init__(
        self,
        client: PermissionsClient,
        cache: ModulePermissionCache | None = None,
        role: Role = Role.PARENT,
    ) -> None:
        self._client = client
        self._cache = cache or ModulePermissionCache(client)
        self.role = role
        self.epoch: int | None = None
        self.state: dict[Module, ModuleFlags] = {}
        self.error: str | None = None
        self.failed: PendingToggle | None = None

    @property
    def editable(self) -> bool:
        return self.role is not Role.SUPER_ADMIN

    @property
    def notice(self) -> str | None:
        return None if self.editable else SUPER_ADMIN_NOTICE

    @property
    def loaded(self) -> bool:
        return self.epoch is not None

    @property
    def title(self) -> str:
        return f"{ROLE_LABELS[self.role]} permissions"

    def select_role(self, role: Role) -> bool:
        self.role = role
        self.failed = None
        return self.refresh()

    def refresh(self) -> bool:
        try:
            snapshot = self._cache.get(self.role)
        except PermissionsClientError as exc:
            logger.warning("role_management_load_failed", extra={"role": self.role.value, "detail": str(exc)})
            self.state = {}
            self.epoch = None
            self.error = LOAD_ERROR_MESSAGE
            return False
        self.state = dict(snapshot.modules)
        self.epoch = snapshot.epoch
        self.error = None
        return True

    def flag(self, module: Module, action: Action) -> bool:
        return self.state.get(module, NO_ACCESS).allows(action)

    def rows(self) -> list[ModuleRow]:
        if not self.editable:
            return []
        return [ModuleRow(module, format_module(module), self.state.get(module, NO_ACCESS)) for module in Module]

    def toggle(self, module: Module, action: Action, value: bool) -> bool:
        if not self.editable:
            raise ReadOnlyRoleError(READ_ONLY_MESSAGE)
        try:
            self._client.set_flag(self.role, module, action, value)
        except PermissionsClientError as exc:
            self.failed = PendingToggle(module, action, value)
            self.error = str(exc)
            logger.warning(
                "role_management_toggle_failed",
                extra={"role": self.role.value, "permission_module": module.value, "action": action.value, "detail": str(exc)},
            )
            return False
        self.failed = None
        self._cache.invalidate(self.role)
        return self.refresh()

    def retry(self) -> bool:
        if self.failed is None:
            return self.refresh()
        pending = self.failed
        return self.toggle(pending.module, pending.action, pending.value)

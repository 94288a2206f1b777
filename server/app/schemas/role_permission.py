from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from app.auth.modules import Action, Module
from app.auth.roles import Role


class ModuleFlagsOut(BaseModel):
    can_view: bool = Field(default=False, alias="canView")
    can_create: bool = Field(default=False, alias="canCreate")
    can_edit: bool = Field(default=False, alias="canEdit")
    can_delete: bool = Field(default=False, alias="canDelete")

    class Config:
        from_attributes = True
        populate_by_name = True


class RolePermissionCreate(ModuleFlagsOut):
    role: Role
    module: Module


class RolePermissionUpdate(BaseModel):
    can_view: bool | None = Field(default=None, alias="canView")
    can_create: bool | None = Field(default=None, alias="canCreate")
    can_edit: bool | None = Field(default=None, alias="canEdit")
    can_delete: bool | None = Field(default=None, alias="canDelete")

    class Config:
        populate_by_name = True

    def changes(self) -> dict[str, bool]:
        return {name: value for name, value in self.model_dump().items() if value is not None}


class RolePermissionOut(ModuleFlagsOut):
    id: int
    role: Role
    module: str
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")


class RolePermissionListResponse(BaseModel):
    role: Role
    epoch: int
    items: list[RolePermissionOut]


class PermissionEpochOut(BaseModel):
    role: Role
    epoch: int


class ModulePermissionMapResponse(BaseModel):
    role: Role
    epoch: int
    modules: dict[str, ModuleFlagsOut]


class FlagToggleRequest(BaseModel):
    role: Role
    module: Module
    action: Action
    value: bool


class PermissionAuditEntry(BaseModel):
    id: int
    field: str
    old_value: bool | None = None
    new_value: bool
    actor_email: str | None = None
    changed_at: datetime

    class Config:
        from_attributes = True

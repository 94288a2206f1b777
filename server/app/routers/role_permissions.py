from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.auth.deps import require_super_admin
from app.auth.resolver import ModuleFlags
from app.auth.roles import ReadOnlyRoleError, Role
from app.core.db import get_db
from app.models.role_permission import RolePermission, RolePermissionAudit
from app.models.user import User
from app.schemas.role_permission import (
    FlagToggleRequest,
    ModuleFlagsOut,
    ModulePermissionMapResponse,
    PermissionAuditEntry,
    PermissionEpochOut,
    RolePermissionCreate,
    RolePermissionListResponse,
    RolePermissionOut,
    RolePermissionUpdate,
)
from app.services import role_permissions as permissions_service
from app.services.role_permissions import (
    PermissionNotFoundError,
    PermissionStoreError,
)

router = APIRouter(tags=["role-permissions"])


def _serialize(row: RolePermission) -> RolePermissionOut:
    return RolePermissionOut(
        id=row.id,
        role=row.role,
        module=row.module,
        can_view=row.can_view,
        can_create=row.can_create,
        can_edit=row.can_edit,
        can_delete=row.can_delete,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _serialize_flags(flags: ModuleFlags) -> ModuleFlagsOut:
    return ModuleFlagsOut(**flags.as_dict())


def _serialize_audit(entry: RolePermissionAudit) -> PermissionAuditEntry:
    return PermissionAuditEntry(
        id=entry.id,
        field=entry.field,
        old_value=entry.old_value,
        new_value=entry.new_value,
        actor_email=entry.actor.email if entry.actor else None,
        changed_at=entry.changed_at,
    )


def _translate(exc: Exception) -> HTTPException:
    if isinstance(exc, PermissionNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, ReadOnlyRoleError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, PermissionStoreError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


@router.get("/role-permissions", response_model=RolePermissionListResponse)
def list_role_permissions(
    role: Role = Query(...),
    db: Session = Depends(get_db),
    _: User = Depends(require_super_admin),
) -> RolePermissionListResponse:
    try:
        rows, epoch = permissions_service.list_permissions(db, role)
    except PermissionStoreError as exc:
        raise _translate(exc) from exc
    return RolePermissionListResponse(role=role, epoch=epoch, items=[_serialize(row) for row in rows])


@router.get("/role-permissions/epoch", response_model=PermissionEpochOut)
def get_role_permission_epoch(
    role: Role = Query(...),
    db: Session = Depends(get_db),
    _: User = Depends(require_super_admin),
) -> PermissionEpochOut:
    try:
        epoch = permissions_service.get_epoch(db, role)
    except PermissionStoreError as exc:
        raise _translate(exc) from exc
    return PermissionEpochOut(role=role, epoch=epoch)


@router.get("/module-permissions", response_model=ModulePermissionMapResponse)
def get_module_permissions(
    role: Role = Query(...),
    db: Session = Depends(get_db),
    _: User = Depends(require_super_admin),
) -> ModulePermissionMapResponse:
    try:
        modules, epoch = permissions_service.module_permission_map(db, role)
    except PermissionStoreError as exc:
        raise _translate(exc) from exc
    return ModulePermissionMapResponse(
        role=role,
        epoch=epoch,
        modules={module.value: _serialize_flags(flags) for module, flags in modules.items()},
    )


@router.post("/role-permissions", response_model=RolePermissionOut, status_code=status.HTTP_200_OK)
def upsert_role_permission(
    payload: RolePermissionCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_super_admin),
) -> RolePermissionOut:
    flags = ModuleFlags(
        can_view=payload.can_view,
        can_create=payload.can_create,
        can_edit=payload.can_edit,
        can_delete=payload.can_delete,
    )
    try:
        row = permissions_service.replace_permission(db, payload.role, payload.module, flags, actor_id=current_user.id)
    except (ReadOnlyRoleError, PermissionStoreError) as exc:
        raise _translate(exc) from exc
    return _serialize(row)


@router.put("/role-permissions/flag", response_model=RolePermissionOut)
def set_role_permission_flag(
    payload: FlagToggleRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_super_admin),
) -> RolePermissionOut:
    try:
        row = permissions_service.set_flag(
            db,
            payload.role,
            payload.module,
            payload.action,
            payload.value,
            actor_id=current_user.id,
        )
    except (ReadOnlyRoleError, PermissionStoreError) as exc:
        raise _translate(exc) from exc
    return _serialize(row)


@router.patch("/role-permissions/{permission_id}", response_model=RolePermissionOut)
def update_role_permission(
    permission_id: int,
    payload: RolePermissionUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_super_admin),
) -> RolePermissionOut:
    try:
        row = permissions_service.update_permission(db, permission_id, payload.changes(), actor_id=current_user.id)
    except (PermissionNotFoundError, ReadOnlyRoleError, PermissionStoreError, ValueError) as exc:
        raise _translate(exc) from exc
    return _serialize(row)


@router.get("/role-permissions/{permission_id}/history", response_model=list[PermissionAuditEntry])
def get_role_permission_history(
    permission_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_super_admin),
) -> list[PermissionAuditEntry]:
    try:
        entries = permissions_service.list_audit(db, permission_id)
    except (PermissionNotFoundError, PermissionStoreError) as exc:
        raise _translate(exc) from exc
    return [_serialize_audit(entry) for entry in entries]

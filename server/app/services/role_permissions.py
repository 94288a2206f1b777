"""Permission matrix store operations.

Every write runs as one transaction scoped to the unique (role, module) key:
the row is inserted with all flags false when absent, locked, and only the
requested flag columns are updated. The role's epoch is bumped and an audit
row is written in the same transaction, so a failed write leaves nothing
behind.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator

from sqlalchemy import update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from app.auth.modules import ACTION_COLUMNS, FLAG_COLUMNS, Action, Module
from app.auth.resolver import ModuleFlags, PermissionIndex, module_permission_map as resolve_module_map, resolve
from app.auth.roles import READ_ONLY_MESSAGE, ReadOnlyRoleError, Role, ensure_editable
from app.models.role_permission import RolePermission, RolePermissionAudit, RolePermissionEpoch, now_utc

logger = logging.getLogger(__name__)

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class PermissionNotFoundError(LookupError):
    pass


class PermissionStoreError(RuntimeError):
    pass


@contextmanager
def _store_read(event: str, **extra: Any) -> Iterator[None]:
    try:
        yield
    except (SQLAlchemyError, LookupError) as exc:
        # LookupError: a stored role outside the Role enum.
        logger.exception(event, extra=extra)
        raise PermissionStoreError("Permission store unavailable") from exc


def _insert(db: Session, model: Any):
    dialect = db.get_bind().dialect.name
    try:
        factory = _DIALECT_INSERTS[dialect]
    except KeyError as exc:
        raise PermissionStoreError(f"Permission upserts are not supported on '{dialect}'") from exc
    return factory(model)


def _lock_row(db: Session, role: Role, module: Module) -> RolePermission:
    return (
        db.query(RolePermission)
        .filter(RolePermission.role == role, RolePermission.module == module.value)
        .populate_existing()
        .with_for_update()
        .one()
    )


def _bump_epoch(db: Session, role: Role, now: datetime) -> None:
    db.execute(
        _insert(db, RolePermissionEpoch)
        .values(role=role, version=0, updated_at=now)
        .on_conflict_do_nothing(index_elements=["role"])
    )
    db.execute(
        update(RolePermissionEpoch)
        .where(RolePermissionEpoch.role == role)
        .values(version=RolePermissionEpoch.version + 1, updated_at=now)
        .execution_options(synchronize_session=False)
    )


def _apply_changes(
    db: Session,
    row: RolePermission,
    changes: dict[str, bool],
    *,
    created: bool,
    actor_id: int | None,
    now: datetime,
) -> None:
    db.execute(
        update(RolePermission)
        .where(RolePermission.id == row.id)
        .values({**changes, "updated_at": now})
        .execution_options(synchronize_session=False)
    )
    for column, value in changes.items():
        previous = None if created else getattr(row, column)
        if previous == value:
            continue
        db.add(
            RolePermissionAudit(
                permission_id=row.id,
                role=row.role,
                module=row.module,
                field=column,
                old_value=previous,
                new_value=value,
                changed_by_id=actor_id,
                changed_at=now,
            )
        )
    _bump_epoch(db, row.role, now)


def _commit_write(db: Session, event: str, **extra: Any) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception(event, extra=extra)
        raise PermissionStoreError("Unable to save permission change") from exc


def _upsert(
    db: Session,
    role: Role,
    module: Module,
    changes: dict[str, bool],
    actor_id: int | None,
) -> RolePermission:
    ensure_editable(role)
    now = now_utc()
    defaults = {column: False for column in FLAG_COLUMNS}
    try:
        inserted_id = db.execute(
            _insert(db, RolePermission)
            .values(role=role, module=module.value, created_at=now, updated_at=now, **defaults)
            .on_conflict_do_nothing(index_elements=["role", "module"])
            .returning(RolePermission.id)
        ).scalar()
        row = _lock_row(db, role, module)
        _apply_changes(db, row, changes, created=inserted_id is not None, actor_id=actor_id, now=now)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("role_permission_write_failed", extra={"role": role.value, "permission_module": module.value})
        raise PermissionStoreError("Unable to save permission change") from exc
    _commit_write(db, "role_permission_commit_failed", role=role.value, permission_module=module.value)
    db.refresh(row)
    if inserted_id is not None:
        logger.info("role_permission_created", extra={"role": role.value, "permission_module": module.value, "actor": actor_id})
    return row


def set_flag(
    db: Session,
    role: Role,
    module: Module,
    action: Action,
    value: bool,
    actor_id: int | None = None,
) -> RolePermission:
    """Set one action flag for (role, module), creating the row when absent.

    A newly created row starts with every other flag false, so the first
    toggle on a pair implicitly denies the remaining actions.
    """

    row = _upsert(db, role, module, {ACTION_COLUMNS[action]: value}, actor_id)
    logger.info(
        "role_permission_flag_set",
        extra={"role": role.value, "permission_module": module.value, "action": action.value, "value": value, "actor": actor_id},
    )
    return row


def replace_permission(
    db: Session,
    role: Role,
    module: Module,
    flags: ModuleFlags,
    actor_id: int | None = None,
) -> RolePermission:
    return _upsert(db, role, module, flags.as_dict(), actor_id)


def get_permission(db: Session, permission_id: int) -> RolePermission:
    with _store_read("role_permission_read_failed", permission_id=permission_id):
        row = db.get(RolePermission, permission_id)
    if row is None:
        raise PermissionNotFoundError("Permission not found")
    return row


def update_permission(
    db: Session,
    permission_id: int,
    changes: dict[str, bool],
    actor_id: int | None = None,
) -> RolePermission:
    """Update only the supplied flags of an existing row."""

    unknown = set(changes) - set(FLAG_COLUMNS)
    if unknown:
        raise ValueError(f"Unknown permission flags: {', '.join(sorted(unknown))}")
    try:
        row = (
            db.query(RolePermission)
            .filter(RolePermission.id == permission_id)
            .populate_existing()
            .with_for_update()
            .first()
        )
        if row is None:
            db.rollback()
            raise PermissionNotFoundError("Permission not found")
        if row.role is Role.SUPER_ADMIN:
            db.rollback()
            raise ReadOnlyRoleError(READ_ONLY_MESSAGE)
        if not changes:
            db.rollback()
            return row
        _apply_changes(db, row, changes, created=False, actor_id=actor_id, now=now_utc())
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("role_permission_write_failed", extra={"permission_id": permission_id})
        raise PermissionStoreError("Unable to save permission change") from exc
    _commit_write(db, "role_permission_commit_failed", permission_id=permission_id)
    db.refresh(row)
    logger.info("role_permission_updated", extra={"permission_id": permission_id, "changes": changes, "actor": actor_id})
    return row


def get_epoch(db: Session, role: Role) -> int:
    with _store_read("role_permission_epoch_read_failed", role=role.value):
        version = db.query(RolePermissionEpoch.version).filter(RolePermissionEpoch.role == role).scalar()
    return int(version or 0)


def list_permissions(db: Session, role: Role) -> tuple[list[RolePermission], int]:
    # Epoch first: a racing write can only make the pair look older than it is.
    epoch = get_epoch(db, role)
    with _store_read("role_permission_read_failed", role=role.value):
        rows = (
            db.query(RolePermission)
            .filter(RolePermission.role == role)
            .order_by(RolePermission.module.asc())
            .all()
        )
    return rows, epoch


def load_permission_index(db: Session, role: Role) -> PermissionIndex:
    rows, _ = list_permissions(db, role)
    return PermissionIndex.from_rows(rows)


def module_permission_map(db: Session, role: Role) -> tuple[dict[Module, ModuleFlags], int]:
    rows, epoch = list_permissions(db, role)
    return resolve_module_map(role, PermissionIndex.from_rows(rows)), epoch


def check_permission(db: Session, role: Role, module: Module, action: Action) -> bool:
    if role is Role.SUPER_ADMIN:
        return True
    return resolve(role, module, action, load_permission_index(db, role))


def list_audit(db: Session, permission_id: int) -> list[RolePermissionAudit]:
    get_permission(db, permission_id)
    with _store_read("role_permission_audit_read_failed", permission_id=permission_id):
        return (
            db.query(RolePermissionAudit)
            .options(joinedload(RolePermissionAudit.actor))
            .filter(RolePermissionAudit.permission_id == permission_id)
            .order_by(RolePermissionAudit.changed_at.asc(), RolePermissionAudit.id.asc())
            .all()
        )

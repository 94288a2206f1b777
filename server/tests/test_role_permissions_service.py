from __future__ import annotations

import threading

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.auth.modules import Action, Module
from app.auth.resolver import ModuleFlags
from app.auth.roles import ReadOnlyRoleError, Role
from app.core.db import Base
from app.models.role_permission import RolePermission
from app.services.role_permissions import (
    PermissionNotFoundError,
    PermissionStoreError,
    check_permission,
    get_epoch,
    get_permission,
    list_audit,
    list_permissions,
    module_permission_map,
    replace_permission,
    set_flag,
    update_permission,
)


def _flags(row: RolePermission) -> tuple[bool, bool, bool, bool]:
    return (row.can_view, row.can_create, row.can_edit, row.can_delete)


@pytest.fixture()
def broken_session():
    # No tables: every statement fails the way an unreachable store does.
    engine = create_engine("sqlite+pysqlite:///:memory:", poolclass=StaticPool)
    session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


def test_first_toggle_creates_row_with_only_that_flag(db_session):
    row = set_flag(db_session, Role.TEACHER, Module.ATTENDANCE, Action.EDIT, True)

    assert row.role is Role.TEACHER
    assert row.module == "attendance"
    assert _flags(row) == (False, False, True, False)


def test_second_toggle_changes_one_flag(db_session):
    first = set_flag(db_session, Role.TEACHER, Module.ATTENDANCE, Action.EDIT, True)
    second = set_flag(db_session, Role.TEACHER, Module.ATTENDANCE, Action.VIEW, True)

    assert second.id == first.id
    assert _flags(second) == (True, False, True, False)
    rows, _ = list_permissions(db_session, Role.TEACHER)
    assert len(rows) == 1


def test_every_write_bumps_role_epoch(db_session):
    assert get_epoch(db_session, Role.OFFICE_ADMIN) == 0

    set_flag(db_session, Role.OFFICE_ADMIN, Module.EXPENSES, Action.VIEW, True)
    assert get_epoch(db_session, Role.OFFICE_ADMIN) == 1

    replace_permission(db_session, Role.OFFICE_ADMIN, Module.REPORTS, ModuleFlags(can_view=True))
    assert get_epoch(db_session, Role.OFFICE_ADMIN) == 2
    assert get_epoch(db_session, Role.TEACHER) == 0


def test_explicit_false_row_overrides_base_entitlement(db_session):
    assert check_permission(db_session, Role.PARENT, Module.STUDENTS, Action.VIEW)

    set_flag(db_session, Role.PARENT, Module.STUDENTS, Action.VIEW, False)

    assert not check_permission(db_session, Role.PARENT, Module.STUDENTS, Action.VIEW)


def test_super_admin_rows_cannot_be_written(db_session):
    with pytest.raises(ReadOnlyRoleError):
        set_flag(db_session, Role.SUPER_ADMIN, Module.SETTINGS, Action.VIEW, False)
    with pytest.raises(ReadOnlyRoleError):
        replace_permission(db_session, Role.SUPER_ADMIN, Module.SETTINGS, ModuleFlags())

    rows, epoch = list_permissions(db_session, Role.SUPER_ADMIN)
    assert rows == []
    assert epoch == 0


def test_update_rejects_super_admin_row(db_session):
    row = RolePermission(role=Role.SUPER_ADMIN, module="reports")
    db_session.add(row)
    db_session.commit()

    with pytest.raises(ReadOnlyRoleError):
        update_permission(db_session, row.id, {"can_view": False})
    assert check_permission(db_session, Role.SUPER_ADMIN, Module.REPORTS, Action.VIEW)


def test_update_permission_touches_only_given_flags(db_session):
    row = replace_permission(db_session, Role.TEACHER, Module.CLASSES, ModuleFlags(can_view=True, can_edit=True))

    updated = update_permission(db_session, row.id, {"can_delete": True})

    assert _flags(updated) == (True, False, True, True)


def test_update_permission_errors(db_session):
    row = set_flag(db_session, Role.TEACHER, Module.CLASSES, Action.VIEW, True)

    with pytest.raises(PermissionNotFoundError):
        update_permission(db_session, row.id + 100, {"can_view": False})
    with pytest.raises(ValueError):
        update_permission(db_session, row.id, {"can_approve": True})

    unchanged = update_permission(db_session, row.id, {})
    assert _flags(unchanged) == (True, False, False, False)


def test_audit_trail_records_actual_changes(db_session, super_admin_user):
    row = set_flag(db_session, Role.TEACHER, Module.REPORTS, Action.VIEW, True, actor_id=super_admin_user.id)
    set_flag(db_session, Role.TEACHER, Module.REPORTS, Action.VIEW, True, actor_id=super_admin_user.id)
    set_flag(db_session, Role.TEACHER, Module.REPORTS, Action.DELETE, True, actor_id=super_admin_user.id)

    entries = list_audit(db_session, row.id)

    assert [(entry.field, entry.old_value, entry.new_value) for entry in entries] == [
        ("can_view", None, True),
        ("can_delete", False, True),
    ]
    assert entries[0].actor.email == "admin@example.com"

    with pytest.raises(PermissionNotFoundError):
        list_audit(db_session, row.id + 100)


def test_module_permission_map_merges_rows_and_overrides(db_session):
    set_flag(db_session, Role.PARENT, Module.REPORTS, Action.VIEW, True)

    modules, epoch = module_permission_map(db_session, Role.PARENT)

    assert epoch == 1
    assert modules[Module.REPORTS] == ModuleFlags(can_view=True)
    assert modules[Module.STUDENTS] == ModuleFlags(can_view=True)
    assert modules[Module.EXPENSES] == ModuleFlags()


def test_list_permissions_orders_by_module(db_session):
    set_flag(db_session, Role.OFFICE_ADMIN, Module.REPORTS, Action.VIEW, True)
    set_flag(db_session, Role.OFFICE_ADMIN, Module.BATCHES, Action.VIEW, True)
    set_flag(db_session, Role.TEACHER, Module.CLASSES, Action.VIEW, True)

    rows, epoch = list_permissions(db_session, Role.OFFICE_ADMIN)

    assert [row.module for row in rows] == ["batches", "reports"]
    assert epoch == 2


def test_store_failures_deny(broken_session):
    with pytest.raises(PermissionStoreError):
        check_permission(broken_session, Role.PARENT, Module.STUDENTS, Action.VIEW)
    with pytest.raises(PermissionStoreError):
        set_flag(broken_session, Role.TEACHER, Module.CLASSES, Action.VIEW, True)
    assert check_permission(broken_session, Role.SUPER_ADMIN, Module.STUDENTS, Action.VIEW)


def test_concurrent_first_toggles_both_survive(tmp_path):
    engine = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'permissions.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    SessionFactory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    barrier = threading.Barrier(2)
    errors: list[Exception] = []

    def toggle(action: Action) -> None:
        session = SessionFactory()
        try:
            barrier.wait()
            set_flag(session, Role.OFFICE_ADMIN, Module.INVENTORY, action, True)
        except Exception as exc:  # surfaced by the assertion below
            errors.append(exc)
        finally:
            session.close()

    threads = [threading.Thread(target=toggle, args=(action,)) for action in (Action.VIEW, Action.CREATE)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    session = SessionFactory()
    try:
        rows, epoch = list_permissions(session, Role.OFFICE_ADMIN)
        assert len(rows) == 1
        assert _flags(rows[0]) == (True, True, False, False)
        assert epoch == 2
    finally:
        session.close()
        engine.dispose()


def test_write_events_are_logged(db_session, caplog):
    row = set_flag(db_session, Role.TEACHER, Module.CLASSES, Action.VIEW, True, actor_id=7)

    assert _flags(row) == (True, False, False, False)
    events = {r.getMessage(): r for r in caplog.records}
    assert events["role_permission_created"].permission_module == "classes"
    assert events["role_permission_flag_set"].action == "view"
    assert events["role_permission_flag_set"].actor == 7


def test_failed_write_is_logged_as_store_error(broken_session, caplog):
    with pytest.raises(PermissionStoreError):
        set_flag(broken_session, Role.TEACHER, Module.CLASSES, Action.VIEW, True)

    failure = next(r for r in caplog.records if r.getMessage() == "role_permission_write_failed")
    assert failure.permission_module == "classes"
    assert failure.exc_info is not None


def test_unknown_stored_role_reads_as_store_error(db_session):
    db_session.execute(
        text(
            "INSERT INTO role_permissions "
            "(role, module, can_view, can_create, can_edit, can_delete, created_at, updated_at) "
            "VALUES ('principal', 'classes', 1, 0, 0, 0, CURRENT_TIMESTAMP, CURRENT_TIMESTAMP)"
        )
    )
    db_session.commit()
    permission_id = db_session.execute(
        text("SELECT id FROM role_permissions WHERE role = 'principal'")
    ).scalar_one()

    with pytest.raises(PermissionStoreError):
        get_permission(db_session, permission_id)

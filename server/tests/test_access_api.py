from __future__ import annotations

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.auth.modules import Action, Module
from app.auth.security import create_access_token
from app.core.db import get_db
from app.main import app
from app.services.role_permissions import set_flag


@pytest.fixture()
def broken_store(client):
    engine = create_engine("sqlite+pysqlite:///:memory:", poolclass=StaticPool)
    BrokenSession = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    def _broken_db():
        db = BrokenSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _broken_db
    yield
    engine.dispose()


def test_whoami_resolves_bearer_token(client, teacher_user):
    token = create_access_token(subject=str(teacher_user.id), role=teacher_user.role)

    resp = client.get("/auth/whoami", headers={"Authorization": f"Bearer {token}"})

    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["user"] == "teacher@example.com"
    assert body["role"] == "teacher"
    assert body["is_super_admin"] is False
    assert body["epoch"] == 0
    assert body["modules"]["students"]["canView"] is True
    assert body["modules"]["attendance"]["canView"] is False


def test_whoami_rejects_missing_or_bad_tokens(client):
    assert client.get("/auth/whoami").status_code == 401
    bad = client.get("/auth/whoami", headers={"Authorization": "Bearer not-a-token"})
    assert bad.status_code == 401
    assert bad.json()["detail"] == "Invalid token"


def test_access_check_follows_rows_and_overrides(client, authorize, db_session, parent_user):
    authorize(parent_user)

    students = client.get("/access/check", params={"module": "students", "action": "view"})
    assert students.json() == {"module": "students", "action": "view", "allowed": True}
    expenses = client.get("/access/check", params={"module": "expenses", "action": "view"})
    assert expenses.json()["allowed"] is False

    set_flag(db_session, parent_user.role, Module.STUDENTS, Action.VIEW, False)

    revoked = client.get("/access/check", params={"module": "students", "action": "view"})
    assert revoked.json()["allowed"] is False


def test_access_check_super_admin_allowed_everywhere(client, authorize, super_admin_user):
    authorize(super_admin_user)

    resp = client.get("/access/check", params={"module": "role_management", "action": "delete"})
    assert resp.json()["allowed"] is True


def test_page_guard_denial_points_to_safe_landing(client, authorize, parent_user):
    authorize(parent_user)

    resp = client.get("/access/pages", params={"path": "/dashboard"})

    assert resp.status_code == 403
    body = resp.json()
    assert body["code"] == "access_denied"
    assert body["path"] == "/dashboard"
    assert body["safe_landing"] == "/students"
    assert body["actual_role"] == "parent"
    assert body["required_roles"] == ["teacher", "officeadmin", "superadmin"]


def test_page_guard_allows_listed_roles(client, authorize, teacher_user):
    authorize(teacher_user)

    resp = client.get("/access/pages", params={"path": "/attendance"})
    assert resp.status_code == 200
    assert resp.json()["state"] == "allowed"

    assert client.get("/access/pages", params={"path": "/nowhere"}).status_code == 404


def test_store_failure_denies_with_503(client, authorize, parent_user, broken_store):
    authorize(parent_user)

    resp = client.get("/access/check", params={"module": "students", "action": "view"})

    assert resp.status_code == 503
    assert resp.json()["detail"] == "Permission store unavailable"


def test_super_admin_check_does_not_need_store(client, authorize, super_admin_user, broken_store):
    authorize(super_admin_user)

    resp = client.get("/access/check", params={"module": "settings", "action": "edit"})
    assert resp.status_code == 200
    assert resp.json()["allowed"] is True


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_write_store_failure_returns_503(client, authorize, super_admin_user, broken_store):
    authorize(super_admin_user)

    resp = client.put(
        "/role-permissions/flag",
        json={"role": "teacher", "module": "classes", "action": "view", "value": True},
    )

    assert resp.status_code == 503
    assert resp.json()["detail"] == "Unable to save permission change"

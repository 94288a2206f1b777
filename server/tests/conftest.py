from __future__ import annotations

import logging
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.auth.deps import get_current_user
from app.auth.roles import Role
from app.core.db import Base, get_db
from app.main import app
from app.models.role_permission import RolePermission, RolePermissionAudit, RolePermissionEpoch
from app.models.user import User

SQLALCHEMY_TEST_URL = "sqlite+pysqlite:///:memory:"
engine = create_engine(
    SQLALCHEMY_TEST_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


def override_get_db() -> Generator[Session, None, None]:
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="session", autouse=True)
def setup_database() -> Generator[None, None, None]:
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def verbose_logging(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.DEBUG)


@pytest.fixture(autouse=True)
def clean_tables() -> Generator[None, None, None]:
    yield
    session = TestingSessionLocal()
    try:
        session.query(RolePermissionAudit).delete()
        session.query(RolePermission).delete()
        session.query(RolePermissionEpoch).delete()
        session.query(User).delete()
        session.commit()
    finally:
        session.close()


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    session = TestingSessionLocal()
    try:
        yield session
        session.commit()
    finally:
        session.close()


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    app.dependency_overrides.clear()
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def authorize(client: TestClient):
    def _apply(user: User):
        app.dependency_overrides[get_current_user] = lambda: user

    yield _apply
    app.dependency_overrides.pop(get_current_user, None)


def _create_user(session: Session, role: Role, email: str, username: str) -> User:
    user = User(email=email, username=username, full_name=username.replace(".", " ").title(), role=role, is_active=True)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture()
def parent_user(db_session: Session) -> User:
    return _create_user(db_session, Role.PARENT, "parent@example.com", "parent.user")


@pytest.fixture()
def teacher_user(db_session: Session) -> User:
    return _create_user(db_session, Role.TEACHER, "teacher@example.com", "teacher.user")


@pytest.fixture()
def office_admin_user(db_session: Session) -> User:
    return _create_user(db_session, Role.OFFICE_ADMIN, "office@example.com", "office.admin")


@pytest.fixture()
def super_admin_user(db_session: Session) -> User:
    return _create_user(db_session, Role.SUPER_ADMIN, "admin@example.com", "super.admin")

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    false,
)
from sqlalchemy.orm import relationship

from app.auth.roles import Role
from app.core.db import Base


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


PermissionRoleType = Enum(
    Role,
    name="permission_role",
    values_callable=lambda enum: [member.value for member in enum],
    native_enum=False,
    length=32,
)


class RolePermission(Base):
    __tablename__ = "role_permissions"
    __table_args__ = (UniqueConstraint("role", "module", name="uq_role_permissions_role_module"),)

    id = Column(Integer, primary_key=True)
    role = Column(PermissionRoleType, nullable=False, index=True)
    module = Column(String(64), nullable=False)
    can_view = Column(Boolean, nullable=False, default=False, server_default=false())
    can_create = Column(Boolean, nullable=False, default=False, server_default=false())
    can_edit = Column(Boolean, nullable=False, default=False, server_default=false())
    can_delete = Column(Boolean, nullable=False, default=False, server_default=false())
    created_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)

    audit_entries = relationship(
        "RolePermissionAudit",
        back_populates="permission",
        order_by="RolePermissionAudit.changed_at",
        cascade="all, delete-orphan",
    )


class RolePermissionEpoch(Base):
    """Per-role version counter, bumped by every write to that role's rows."""

    __tablename__ = "role_permission_epochs"

    role = Column(PermissionRoleType, primary_key=True)
    version = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)


class RolePermissionAudit(Base):
    __tablename__ = "role_permission_audit"

    id = Column(Integer, primary_key=True)
    permission_id = Column(Integer, ForeignKey("role_permissions.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(PermissionRoleType, nullable=False)
    module = Column(String(64), nullable=False)
    field = Column(String(32), nullable=False)
    old_value = Column(Boolean, nullable=True)
    new_value = Column(Boolean, nullable=False)
    changed_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    changed_at = Column(DateTime(timezone=True), default=now_utc, nullable=False, index=True)

    permission = relationship("RolePermission", back_populates="audit_entries")
    actor = relationship("User")

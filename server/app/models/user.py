from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, Enum, Integer, String
from sqlalchemy.sql import func

from app.auth.roles import Role
from app.core.db import Base

RoleType = Enum(
    Role,
    name="user_role",
    values_callable=lambda enum: [member.value for member in enum],
    native_enum=False,
    length=32,
)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    username = Column(String(150), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=True)
    role = Column(RoleType, nullable=False, default=Role.PARENT)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    @property
    def is_super_admin(self) -> bool:
        return self.role == Role.SUPER_ADMIN

from __future__ import annotations

from sqlalchemy.orm import Session

from app.auth.modules import Module
from app.auth.resolver import ModuleFlags
from app.auth.roles import Role
from app.core.db import Base, SessionLocal, engine
from app.models.role_permission import RolePermission
from app.models.user import User
from app.services.role_permissions import replace_permission

DEMO_USERS = [
    ("parent@example.com", "parent.demo", "Parent Demo", Role.PARENT),
    ("teacher@example.com", "teacher.demo", "Teacher Demo", Role.TEACHER),
    ("office@example.com", "office.admin", "Office Admin", Role.OFFICE_ADMIN),
    ("superadmin@example.com", "super.admin", "Super Admin", Role.SUPER_ADMIN),
]

VIEW_ONLY = ModuleFlags(can_view=True)
MANAGE = ModuleFlags(can_view=True, can_create=True, can_edit=True)

BASELINE_PERMISSIONS: dict[tuple[Role, Module], ModuleFlags] = {
    (Role.TEACHER, Module.CLASSES): VIEW_ONLY,
    (Role.TEACHER, Module.ATTENDANCE): MANAGE,
    (Role.OFFICE_ADMIN, Module.STUDENTS): MANAGE,
    (Role.OFFICE_ADMIN, Module.CLASSES): MANAGE,
    (Role.OFFICE_ADMIN, Module.FEE_MANAGEMENT): MANAGE,
    (Role.OFFICE_ADMIN, Module.FEE_PAYMENTS): MANAGE,
    (Role.OFFICE_ADMIN, Module.EXPENSES): MANAGE,
    (Role.OFFICE_ADMIN, Module.INVENTORY): MANAGE,
    (Role.OFFICE_ADMIN, Module.REPORTS): VIEW_ONLY,
}


def ensure_user(db: Session, email: str, username: str, full_name: str, role: Role) -> User:
    user = db.query(User).filter_by(email=email).first()
    if user is None:
        user = User(email=email, username=username, full_name=full_name, is_active=True)
        db.add(user)
    user.role = role
    db.commit()
    db.refresh(user)
    return user


def ensure_baseline_permissions(db: Session, actor: User | None) -> int:
    created = 0
    for (role, module), flags in BASELINE_PERMISSIONS.items():
        exists = (
            db.query(RolePermission.id)
            .filter(RolePermission.role == role, RolePermission.module == module.value)
            .first()
        )
        if exists:
            continue
        replace_permission(db, role, module, flags, actor_id=actor.id if actor else None)
        created += 1
    return created


def main() -> None:
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        users = {role: ensure_user(db, email, username, full_name, role) for email, username, full_name, role in DEMO_USERS}
        created = ensure_baseline_permissions(db, users.get(Role.SUPER_ADMIN))
        print(f"Seeded {len(users)} users and {created} permission rows")
    finally:
        db.close()


if __name__ == "__main__":
    main()

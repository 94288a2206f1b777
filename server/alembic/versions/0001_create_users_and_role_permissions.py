"""create users and role permission tables

Revision ID: 0001_users_role_permissions
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_users_role_permissions"
down_revision = None
branch_labels = None
depends_on = None

ROLE_VALUES = ("parent", "teacher", "officeadmin", "superadmin")


def _role_column(name: str, type_name: str, **kwargs) -> sa.Column:
    return sa.Column(name, sa.Enum(*ROLE_VALUES, name=type_name, native_enum=False, length=32), **kwargs)


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("username", sa.String(length=150), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=True),
        _role_column("role", "user_role", nullable=False, server_default="parent"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_username", "users", ["username"], unique=True)

    op.create_table(
        "role_permissions",
        sa.Column("id", sa.Integer(), primary_key=True),
        _role_column("role", "permission_role", nullable=False),
        sa.Column("module", sa.String(length=64), nullable=False),
        sa.Column("can_view", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("can_create", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("can_edit", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("can_delete", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("role", "module", name="uq_role_permissions_role_module"),
    )
    op.create_index("ix_role_permissions_role", "role_permissions", ["role"])

    op.create_table(
        "role_permission_epochs",
        _role_column("role", "permission_role", primary_key=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "role_permission_audit",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "permission_id",
            sa.Integer(),
            sa.ForeignKey("role_permissions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _role_column("role", "permission_role", nullable=False),
        sa.Column("module", sa.String(length=64), nullable=False),
        sa.Column("field", sa.String(length=32), nullable=False),
        sa.Column("old_value", sa.Boolean(), nullable=True),
        sa.Column("new_value", sa.Boolean(), nullable=False),
        sa.Column("changed_by_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("changed_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_role_permission_audit_permission_id", "role_permission_audit", ["permission_id"])
    op.create_index("ix_role_permission_audit_changed_at", "role_permission_audit", ["changed_at"])


def downgrade() -> None:
    op.drop_index("ix_role_permission_audit_changed_at", table_name="role_permission_audit")
    op.drop_index("ix_role_permission_audit_permission_id", table_name="role_permission_audit")
    op.drop_table("role_permission_audit")
    op.drop_table("role_permission_epochs")
    op.drop_index("ix_role_permissions_role", table_name="role_permissions")
    op.drop_table("role_permissions")
    op.drop_index("ix_users_username", table_name="users")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")

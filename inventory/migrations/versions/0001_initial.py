"""Initial inventory schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 00:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

pc_status = postgresql.ENUM(
    "active",
    "maintenance",
    "retired",
    name="pc_status",
    create_type=False,
)
user_role = postgresql.ENUM(
    "admin",
    "user",
    name="user_role",
    create_type=False,
)
pc_event_type = postgresql.ENUM(
    "created",
    "assigned",
    "unassigned",
    "maintenance",
    "status_change",
    "specs_update",
    "notes_update",
    name="pc_event_type",
    create_type=False,
)


def upgrade() -> None:
    bind = op.get_bind()
    pc_status.create(bind, checkfirst=True)
    user_role.create(bind, checkfirst=True)
    pc_event_type.create(bind, checkfirst=True)

    op.create_table(
        "employees",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("department", sa.String(length=255), nullable=False),
        sa.Column("position", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.UniqueConstraint("email", name="uq_employees_email"),
    )
    op.create_index("ix_employees_name", "employees", ["name"])

    op.create_table(
        "pcs",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("pc_id", sa.String(length=50), nullable=False),
        sa.Column("employee_id", sa.String(length=36), nullable=True),
        sa.Column("brand", sa.String(length=100), nullable=False),
        sa.Column("model", sa.String(length=100), nullable=False),
        sa.Column("cpu", sa.String(length=100), nullable=False),
        sa.Column("ram", sa.Integer(), nullable=False),
        sa.Column("storage", sa.String(length=100), nullable=False),
        sa.Column("operating_system", sa.String(length=100), nullable=False),
        sa.Column("serial_number", sa.String(length=100), nullable=False),
        sa.Column("purchase_date", sa.Date(), nullable=False),
        sa.Column("warranty_expiry", sa.Date(), nullable=False),
        sa.Column("status", pc_status, nullable=False, server_default="active"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("pc_id", name="uq_pcs_pc_id"),
        sa.UniqueConstraint("serial_number", name="uq_pcs_serial_number"),
        sa.CheckConstraint("ram > 0", name="ck_pcs_ram_positive"),
    )
    op.create_index("ix_pcs_employee_id", "pcs", ["employee_id"])
    op.create_index("ix_pcs_status", "pcs", ["status"])

    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("username", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("role", user_role, nullable=False, server_default="user"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
        sa.Column("two_factor_secret", sa.Text(), nullable=True),
        sa.Column("two_factor_enabled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("backup_codes", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.UniqueConstraint("username", name="uq_users_username"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    op.create_table(
        "sessions",
        sa.Column("id", sa.String(length=255), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_sessions_user_id", "sessions", ["user_id"])
    op.create_index("ix_sessions_expires_at", "sessions", ["expires_at"])

    op.create_table(
        "pc_history",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("pc_id", sa.String(length=36), nullable=True),
        sa.Column("serial_number", sa.String(length=100), nullable=False),
        sa.Column("event_type", pc_event_type, nullable=False),
        sa.Column("event_description", sa.Text(), nullable=False),
        sa.Column("old_value", sa.Text(), nullable=True),
        sa.Column("new_value", sa.Text(), nullable=True),
        sa.Column("performed_by", sa.String(length=36), nullable=True),
        sa.Column("performed_by_name", sa.String(length=200), nullable=True),
        sa.Column("related_employee_id", sa.String(length=36), nullable=True),
        sa.Column("related_employee_name", sa.String(length=200), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["pc_id"], ["pcs.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["performed_by"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["related_employee_id"], ["employees.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_pc_history_pc_id", "pc_history", ["pc_id"])
    op.create_index("ix_pc_history_serial_number", "pc_history", ["serial_number"])
    op.create_index("ix_pc_history_created_at", "pc_history", ["created_at"])


def downgrade() -> None:
    op.drop_index("ix_pc_history_created_at", table_name="pc_history")
    op.drop_index("ix_pc_history_serial_number", table_name="pc_history")
    op.drop_index("ix_pc_history_pc_id", table_name="pc_history")
    op.drop_table("pc_history")
    op.drop_index("ix_sessions_expires_at", table_name="sessions")
    op.drop_index("ix_sessions_user_id", table_name="sessions")
    op.drop_table("sessions")
    op.drop_table("users")
    op.drop_index("ix_pcs_status", table_name="pcs")
    op.drop_index("ix_pcs_employee_id", table_name="pcs")
    op.drop_table("pcs")
    op.drop_index("ix_employees_name", table_name="employees")
    op.drop_table("employees")

    bind = op.get_bind()
    pc_event_type.drop(bind, checkfirst=True)
    user_role.drop(bind, checkfirst=True)
    pc_status.drop(bind, checkfirst=True)

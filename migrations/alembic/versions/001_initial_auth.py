"""Auth schema: accounts, otp_records, auth_sessions, audit logs

Revision ID: 001
Revises:
Create Date: 2026-10-18

Tables created:
  - doctors               Doctor accounts + professional profile
  - patients              Patient accounts + medical profile
  - admins                Admin / super admin accounts
  - otp_records           Hashed 6-digit codes keyed by (email, purpose)
  - auth_sessions         Device sessions; at most one active per account
  - auth_logs             Append-only authentication events
  - admin_action_logs     Append-only moderation events

Enum columns are stored as VARCHAR(32) (non-native enums), so no
PostgreSQL TYPE objects are created.

Downgrade: drops all tables in reverse order.
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_TS = sa.DateTime(timezone=True)
_ENUM = sa.String(32)


def _account_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(150), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("is_email_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("email_verified_at", _TS, nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("verification_status", _ENUM, nullable=False, server_default="pending"),
        sa.Column("verified_by", sa.Uuid(), nullable=True),
        sa.Column("verified_at", _TS, nullable=True),
        sa.Column("suspended_by", sa.Uuid(), nullable=True),
        sa.Column("suspended_at", _TS, nullable=True),
        sa.Column("suspension_reason", sa.Text(), nullable=True),
        sa.Column("password_changed_at", _TS, nullable=True),
        sa.Column("password_reset_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("password_reset_used_at", _TS, nullable=True),
        sa.Column("password_reset_token", sa.String(255), nullable=True),
        sa.Column("password_reset_expires", _TS, nullable=True),
        sa.Column("last_login", _TS, nullable=True),
        sa.Column("last_logout", _TS, nullable=True),
        sa.Column("created_at", _TS, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", _TS, nullable=False, server_default=sa.func.now()),
    ]


# ─────────────────────────────────────────────────────────────────────────────
#  UPGRADE
# ─────────────────────────────────────────────────────────────────────────────

def upgrade() -> None:
    # ── 1. Accounts ───────────────────────────────────────────────────────────
    op.create_table(
        "doctors",
        *_account_columns(),
        sa.Column("specialization", sa.String(120), nullable=True),
        sa.Column("experience", sa.Integer(), nullable=True),
        sa.Column("qualification", sa.String(255), nullable=True),
        sa.Column("about", sa.Text(), nullable=True),
        sa.Column("contact_number", sa.String(20), nullable=True),
        sa.Column("avatar", sa.String(500), nullable=True),
        sa.UniqueConstraint("email", name="uq_doctors_email"),
    )
    op.create_index("ix_doctors_email", "doctors", ["email"])

    op.create_table(
        "patients",
        *_account_columns(),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("gender", sa.String(20), nullable=True),
        sa.Column("contact_number", sa.String(20), nullable=True),
        sa.Column("blood_group", sa.String(5), nullable=True),
        sa.Column("allergies", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("emergency_contacts", sa.JSON(), nullable=False, server_default="[]"),
        sa.UniqueConstraint("email", name="uq_patients_email"),
    )
    op.create_index("ix_patients_email", "patients", ["email"])

    op.create_table(
        "admins",
        *_account_columns(),
        sa.Column("role", _ENUM, nullable=False, server_default="admin"),
        sa.Column("avatar", sa.String(500), nullable=True),
        sa.Column("created_by", sa.Uuid(), nullable=True),
        sa.UniqueConstraint("email", name="uq_admins_email"),
    )
    op.create_index("ix_admins_email", "admins", ["email"])

    # ── 2. OTP records ────────────────────────────────────────────────────────
    op.create_table(
        "otp_records",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("otp_hash", sa.String(255), nullable=False),
        sa.Column("role", _ENUM, nullable=False),
        sa.Column("purpose", _ENUM, nullable=False),
        sa.Column("verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("attempts", sa.SmallInteger(), nullable=False, server_default="0"),
        sa.Column("expires_at", _TS, nullable=False),
        sa.Column("created_at", _TS, nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "idx_otp_records_email_purpose", "otp_records", ["email", "purpose", "created_at"]
    )

    # ── 3. Device sessions ────────────────────────────────────────────────────
    op.create_table(
        "auth_sessions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("user_type", _ENUM, nullable=False),
        sa.Column("token", sa.Text(), nullable=False),
        sa.Column("device_info", sa.JSON(), nullable=False, server_default="{}"),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("last_activity", _TS, nullable=False, server_default=sa.func.now()),
        sa.Column("expires_at", _TS, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("revoked_reason", sa.String(120), nullable=True),
        sa.Column("created_at", _TS, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", _TS, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("token", name="uq_auth_sessions_token"),
    )
    # Storage-level guard: one active session per (user_id, user_type).
    op.create_index(
        "uq_auth_sessions_one_active",
        "auth_sessions",
        ["user_id", "user_type"],
        unique=True,
        postgresql_where=sa.text("is_active"),
    )
    op.create_index(
        "idx_auth_sessions_user", "auth_sessions", ["user_id", "user_type", "is_active"]
    )
    op.create_index("idx_auth_sessions_expires_at", "auth_sessions", ["expires_at"])

    # ── 4. Audit logs ─────────────────────────────────────────────────────────
    op.create_table(
        "auth_logs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), nullable=True),
        sa.Column("user_type", _ENUM, nullable=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("action", sa.String(40), nullable=False),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=False, server_default="{}"),
        sa.Column("created_at", _TS, nullable=False, server_default=sa.func.now()),
    )
    op.create_index("idx_auth_logs_email_created", "auth_logs", ["email", "created_at"])
    op.create_index("idx_auth_logs_action_created", "auth_logs", ["action", "created_at"])
    op.create_index("idx_auth_logs_user", "auth_logs", ["user_id", "user_type"])

    op.create_table(
        "admin_action_logs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("admin_id", sa.Uuid(), nullable=False),
        sa.Column("action_type", _ENUM, nullable=False),
        sa.Column("target_user_id", sa.Uuid(), nullable=True),
        sa.Column("target_user_type", _ENUM, nullable=True),
        sa.Column("previous_data", sa.JSON(), nullable=False, server_default="{}"),
        sa.Column("new_data", sa.JSON(), nullable=False, server_default="{}"),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("created_at", _TS, nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "idx_admin_action_logs_admin_created", "admin_action_logs", ["admin_id", "created_at"]
    )
    op.create_index(
        "idx_admin_action_logs_target",
        "admin_action_logs",
        ["target_user_id", "target_user_type"],
    )


# ─────────────────────────────────────────────────────────────────────────────
#  DOWNGRADE
# ─────────────────────────────────────────────────────────────────────────────

def downgrade() -> None:
    op.drop_table("admin_action_logs")
    op.drop_table("auth_logs")
    op.drop_table("auth_sessions")
    op.drop_table("otp_records")
    op.drop_table("admins")
    op.drop_table("patients")
    op.drop_table("doctors")

"""
SQLAlchemy models for accounts, OTP records, sessions and audit logs.

The same mapped classes back both the SQL and the in-memory stores; records
are always built through careauth.database.with_defaults so Python-side
defaults are populated before the first flush.
"""
from __future__ import annotations

import uuid
from datetime import date, datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from careauth.auth.constants import (
    AdminActionType,
    OTPPurpose,
    Role,
    UserType,
    VerificationStatus,
)
from careauth.database import Base, UTCDateTime, utcnow


def _enum(enum_cls: type, name: str) -> sa.Enum:
    return sa.Enum(
        enum_cls,
        name=name,
        values_callable=lambda x: [e.value for e in x],
        create_constraint=False,
        native_enum=False,
        length=32,
    )


# ── Accounts ──────────────────────────────────────────────────────────────────

class AccountMixin:
    """Columns shared by doctors, patients and admins."""

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(sa.String(150), nullable=False)

    email: Mapped[str] = mapped_column(sa.String(255), nullable=False, unique=True, index=True)

    password_hash: Mapped[str] = mapped_column(sa.String(255), nullable=False)

    is_email_verified: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    email_verified_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    is_active: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)

    verification_status: Mapped[VerificationStatus] = mapped_column(
        _enum(VerificationStatus, "verification_status"),
        nullable=False,
        default=VerificationStatus.PENDING,
    )
    # Weak references to admins.id (no FK: admins may be deleted).
    verified_by: Mapped[uuid.UUID | None] = mapped_column(sa.Uuid)
    verified_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    suspended_by: Mapped[uuid.UUID | None] = mapped_column(sa.Uuid)
    suspended_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    suspension_reason: Mapped[str | None] = mapped_column(sa.Text)

    password_changed_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    password_reset_count: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    password_reset_used_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    # Legacy link-based reset fields; cleared whenever an OTP reset completes.
    password_reset_token: Mapped[str | None] = mapped_column(sa.String(255))
    password_reset_expires: Mapped[datetime | None] = mapped_column(UTCDateTime)

    last_login: Mapped[datetime | None] = mapped_column(UTCDateTime)
    last_logout: Mapped[datetime | None] = mapped_column(UTCDateTime)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )


class Doctor(AccountMixin, Base):
    __tablename__ = "doctors"

    user_type = UserType.DOCTOR

    specialization: Mapped[str | None] = mapped_column(sa.String(120))
    experience: Mapped[int | None] = mapped_column(sa.Integer)
    qualification: Mapped[str | None] = mapped_column(sa.String(255))
    about: Mapped[str | None] = mapped_column(sa.Text)
    contact_number: Mapped[str | None] = mapped_column(sa.String(20))
    avatar: Mapped[str | None] = mapped_column(sa.String(500))

    @property
    def role(self) -> Role:
        return Role.DOCTOR


class Patient(AccountMixin, Base):
    __tablename__ = "patients"

    user_type = UserType.PATIENT

    date_of_birth: Mapped[date | None] = mapped_column(sa.Date)
    gender: Mapped[str | None] = mapped_column(sa.String(20))
    contact_number: Mapped[str | None] = mapped_column(sa.String(20))
    blood_group: Mapped[str | None] = mapped_column(sa.String(5))
    allergies: Mapped[list] = mapped_column(sa.JSON, nullable=False, default=list)
    # [{"name": ..., "relationship": ..., "phone": ...}]
    emergency_contacts: Mapped[list] = mapped_column(sa.JSON, nullable=False, default=list)

    @property
    def role(self) -> Role:
        return Role.PATIENT


class Admin(AccountMixin, Base):
    __tablename__ = "admins"

    user_type = UserType.ADMIN

    role: Mapped[Role] = mapped_column(_enum(Role, "admin_role"), nullable=False, default=Role.ADMIN)
    avatar: Mapped[str | None] = mapped_column(sa.String(500))
    created_by: Mapped[uuid.UUID | None] = mapped_column(sa.Uuid)


Account = Doctor | Patient | Admin

ACCOUNT_MODELS: dict[UserType, type[Doctor] | type[Patient] | type[Admin]] = {
    UserType.DOCTOR: Doctor,
    UserType.PATIENT: Patient,
    UserType.ADMIN: Admin,
}


# ── OTP records ───────────────────────────────────────────────────────────────

class OTPRecord(Base):
    """
    One pending code per (email, purpose).

    ``otp_hash`` holds an argon2 hash of the 6-digit code; the plaintext only
    ever travels to the notifier.
    """

    __tablename__ = "otp_records"
    __table_args__ = (
        sa.Index("idx_otp_records_email_purpose", "email", "purpose", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    otp_hash: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    role: Mapped[Role] = mapped_column(_enum(Role, "otp_role"), nullable=False)
    purpose: Mapped[OTPPurpose] = mapped_column(_enum(OTPPurpose, "otp_purpose"), nullable=False)
    verified: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    attempts: Mapped[int] = mapped_column(sa.SmallInteger, nullable=False, default=0)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)


# ── Device sessions ───────────────────────────────────────────────────────────

class AuthSession(Base):
    __tablename__ = "auth_sessions"
    __table_args__ = (
        # At most one active session per account (single-device enforcement).
        sa.Index(
            "uq_auth_sessions_one_active",
            "user_id",
            "user_type",
            unique=True,
            postgresql_where=sa.text("is_active"),
            sqlite_where=sa.text("is_active"),
        ),
        sa.Index("idx_auth_sessions_user", "user_id", "user_type", "is_active"),
        sa.Index("idx_auth_sessions_expires_at", "expires_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, nullable=False)
    user_type: Mapped[UserType] = mapped_column(_enum(UserType, "session_user_type"), nullable=False)
    token: Mapped[str] = mapped_column(sa.Text, nullable=False, unique=True)
    # {"browser": ..., "os": ..., "device": ...}
    device_info: Mapped[dict] = mapped_column(sa.JSON, nullable=False, default=dict)
    ip_address: Mapped[str | None] = mapped_column(sa.String(45))
    user_agent: Mapped[str | None] = mapped_column(sa.Text)
    last_activity: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    is_active: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)
    revoked_reason: Mapped[str | None] = mapped_column(sa.String(120))
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )


# ── Audit logs (append-only) ──────────────────────────────────────────────────

class AuthLog(Base):
    __tablename__ = "auth_logs"
    __table_args__ = (
        sa.Index("idx_auth_logs_email_created", "email", "created_at"),
        sa.Index("idx_auth_logs_action_created", "action", "created_at"),
        sa.Index("idx_auth_logs_user", "user_id", "user_type"),
    )

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID | None] = mapped_column(sa.Uuid)
    user_type: Mapped[UserType | None] = mapped_column(_enum(UserType, "auth_log_user_type"))
    email: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    action: Mapped[str] = mapped_column(sa.String(40), nullable=False)
    success: Mapped[bool] = mapped_column(sa.Boolean, nullable=False)
    failure_reason: Mapped[str | None] = mapped_column(sa.Text)
    ip_address: Mapped[str | None] = mapped_column(sa.String(45))
    user_agent: Mapped[str | None] = mapped_column(sa.Text)
    details: Mapped[dict] = mapped_column(sa.JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)


class AdminActionLog(Base):
    __tablename__ = "admin_action_logs"
    __table_args__ = (
        sa.Index("idx_admin_action_logs_admin_created", "admin_id", "created_at"),
        sa.Index("idx_admin_action_logs_target", "target_user_id", "target_user_type"),
    )

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=uuid.uuid4)
    admin_id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, nullable=False)
    action_type: Mapped[AdminActionType] = mapped_column(
        _enum(AdminActionType, "admin_action_type"), nullable=False
    )
    target_user_id: Mapped[uuid.UUID | None] = mapped_column(sa.Uuid)
    target_user_type: Mapped[UserType | None] = mapped_column(
        _enum(UserType, "admin_action_target_type")
    )
    previous_data: Mapped[dict] = mapped_column(sa.JSON, nullable=False, default=dict)
    new_data: Mapped[dict] = mapped_column(sa.JSON, nullable=False, default=dict)
    reason: Mapped[str | None] = mapped_column(sa.Text)
    ip_address: Mapped[str | None] = mapped_column(sa.String(45))
    user_agent: Mapped[str | None] = mapped_column(sa.Text)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

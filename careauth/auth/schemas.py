"""
Pydantic V2 request/response schemas for the auth domain.

Separation of concerns:
  - *Request  models:  input from the client (strict extra="forbid")
  - *Response models:  output to the client (no write-only fields exposed)
"""
from __future__ import annotations

import enum
import uuid
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from careauth.auth.constants import OTPPurpose, Role, VerificationStatus


# ── Shared base ───────────────────────────────────────────────────────────────

class _Base(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        str_strip_whitespace=True,
    )


class SelfServiceRole(str, enum.Enum):
    """Roles that can sign up and log in through the OTP flow."""

    DOCTOR = "doctor"
    PATIENT = "patient"


class AccountRole(str, enum.Enum):
    """Roles that own a password (forgot / reset / resend for reset)."""

    DOCTOR = "doctor"
    PATIENT = "patient"
    ADMIN = "admin"


class EmergencyContact(_Base):
    name: str = Field(min_length=1, max_length=150)
    relationship: str = Field(min_length=1, max_length=50)
    phone: str = Field(pattern=r"^\+?[0-9\-\s]{7,20}$")


# ── Registration / login ──────────────────────────────────────────────────────

class RegisterRequest(_Base):
    """Body for POST /auth/register."""

    name: str = Field(min_length=2, max_length=150)
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    role: SelfServiceRole
    # Doctor
    specialization: str | None = Field(default=None, max_length=120)
    experience: int | None = Field(default=None, ge=0, le=80)
    qualification: str | None = Field(default=None, max_length=255)
    about: str | None = Field(default=None, max_length=2000)
    # Both
    contact_number: str | None = Field(default=None, pattern=r"^\+?[0-9\-\s]{7,20}$")
    # Patient
    date_of_birth: date | None = None
    gender: str | None = Field(default=None, max_length=20)
    blood_group: str | None = Field(default=None, pattern=r"^(A|B|AB|O)[+-]$")
    allergies: list[str] | None = None
    emergency_contacts: list[EmergencyContact] | None = None

    def profile_fields(self) -> dict[str, Any]:
        """Role-specific fields that were actually supplied."""
        data = self.model_dump(
            exclude={"name", "email", "password", "role"},
            exclude_none=True,
            mode="json",
        )
        if "date_of_birth" in data:
            data["date_of_birth"] = self.date_of_birth
        return data


class LoginRequest(_Base):
    """Body for POST /auth/login."""

    email: EmailStr
    password: str = Field(min_length=1)
    role: SelfServiceRole


class AdminLoginRequest(_Base):
    email: EmailStr
    password: str = Field(min_length=1)


class VerifyOTPRequest(_Base):
    email: EmailStr
    otp: str = Field(pattern=r"^\d{6}$")
    role: SelfServiceRole
    purpose: OTPPurpose


class ResendOTPRequest(_Base):
    email: EmailStr
    role: AccountRole
    purpose: OTPPurpose


# ── Password flows ────────────────────────────────────────────────────────────

class ForgotPasswordRequest(_Base):
    email: EmailStr
    role: AccountRole


class ResetPasswordRequest(_Base):
    email: EmailStr
    otp: str = Field(pattern=r"^\d{6}$")
    password: str = Field(min_length=8, max_length=128)
    confirm_password: str
    role: AccountRole


class ChangePasswordRequest(_Base):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=8, max_length=128)
    confirm_password: str


# ── Profile ───────────────────────────────────────────────────────────────────

class ProfileUpdateRequest(BaseModel):
    """
    Body for PUT /auth/me.

    Extra keys are accepted here and rejected by the per-role allow-list in
    the credential store, so the error names the offending fields.
    """

    model_config = ConfigDict(extra="allow", str_strip_whitespace=True)

    name: str | None = Field(default=None, min_length=2, max_length=150)
    specialization: str | None = Field(default=None, max_length=120)
    experience: int | None = Field(default=None, ge=0, le=80)
    qualification: str | None = Field(default=None, max_length=255)
    about: str | None = Field(default=None, max_length=2000)
    contact_number: str | None = Field(default=None, pattern=r"^\+?[0-9\-\s]{7,20}$")
    avatar: str | None = Field(default=None, max_length=500)
    date_of_birth: date | None = None
    gender: str | None = Field(default=None, max_length=20)
    blood_group: str | None = Field(default=None, pattern=r"^(A|B|AB|O)[+-]$")
    allergies: list[str] | None = None
    emergency_contacts: list[EmergencyContact] | None = None

    def changes(self) -> dict[str, Any]:
        data = self.model_dump(exclude_unset=True)
        if data.get("name", "") is None:
            del data["name"]
        return data


# ── Response models ───────────────────────────────────────────────────────────

class MessageResponse(BaseModel):
    success: bool = True
    message: str


class AccountProfile(BaseModel):
    """Public view of an account; never includes hashes or reset tokens."""

    model_config = ConfigDict(from_attributes=True, extra="ignore")

    id: uuid.UUID
    name: str
    email: str
    role: Role
    is_email_verified: bool
    is_active: bool
    verification_status: VerificationStatus
    last_login: datetime | None = None
    last_logout: datetime | None = None
    created_at: datetime
    # Doctor
    specialization: str | None = None
    experience: int | None = None
    qualification: str | None = None
    about: str | None = None
    # Doctor / patient
    contact_number: str | None = None
    avatar: str | None = None
    # Patient
    date_of_birth: date | None = None
    gender: str | None = None
    blood_group: str | None = None
    allergies: list[str] | None = None
    emergency_contacts: list[dict[str, Any]] | None = None


class RegisterResponse(BaseModel):
    success: bool = True
    message: str
    email: str
    role: Role
    requires_verification: bool = True
    email_sent: bool
    otp: str | None = None
    dev_note: str | None = None


class OTPSentResponse(BaseModel):
    success: bool = True
    message: str
    email: str
    role: Role | None = None
    requires_otp: bool = True
    otp: str | None = None
    dev_note: str | None = None


class SessionInfo(BaseModel):
    single_device_enforcement: bool = True
    previous_device_logged_out: bool
    revoked_sessions: int
    message: str


class LoginInfo(BaseModel):
    previous_login: datetime | None = None
    last_logout: datetime | None = None


class LoginResponse(BaseModel):
    success: bool = True
    message: str
    data: AccountProfile
    token: str
    session_info: SessionInfo
    login_info: LoginInfo


class VerifiedEmailResponse(BaseModel):
    success: bool = True
    message: str
    data: AccountProfile


class MeResponse(BaseModel):
    success: bool = True
    data: AccountProfile

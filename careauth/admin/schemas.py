"""
Admin domain: request/response schemas.
"""
from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from careauth.auth.constants import AdminActionType, Role, UserType, VerificationStatus
from careauth.auth.schemas import AccountProfile


class AccountKind(str, enum.Enum):
    """Path segment naming the account collection (``/users/doctor/{id}``)."""

    DOCTOR = "doctor"
    PATIENT = "patient"
    ADMIN = "admin"

    @property
    def user_type(self) -> UserType:
        return {
            AccountKind.DOCTOR: UserType.DOCTOR,
            AccountKind.PATIENT: UserType.PATIENT,
            AccountKind.ADMIN: UserType.ADMIN,
        }[self]


class AccountStatus(str, enum.Enum):
    """``status`` filter of the user directory."""

    ACTIVE = "active"
    SUSPENDED = "suspended"


# ── Requests ──────────────────────────────────────────────────────────────────

class VerificationUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    verification_status: VerificationStatus
    reason: str | None = Field(default=None, max_length=1000)


class StatusUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    is_active: bool
    reason: str | None = Field(default=None, max_length=1000)


class AdminCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    name: str = Field(min_length=2, max_length=150)
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    role: Role = Role.ADMIN


# ── Responses ─────────────────────────────────────────────────────────────────

class AccountResponse(BaseModel):
    success: bool = True
    message: str
    data: AccountProfile


class StatusUpdateResponse(AccountResponse):
    revoked_sessions: int = 0
    cancelled_appointments: int = 0


class AuthLogEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID | None = None
    user_type: UserType | None = None
    email: str
    action: str
    success: bool
    failure_reason: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    details: dict[str, Any]
    created_at: datetime


class AdminActionEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    admin_id: uuid.UUID
    action_type: AdminActionType
    target_user_id: uuid.UUID | None = None
    target_user_type: UserType | None = None
    previous_data: dict[str, Any]
    new_data: dict[str, Any]
    reason: str | None = None
    ip_address: str | None = None
    created_at: datetime


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class UserListResponse(BaseModel):
    success: bool = True
    data: list[AccountProfile]
    pagination: Pagination


class AuthLogListResponse(BaseModel):
    success: bool = True
    data: list[AuthLogEntry]
    pagination: Pagination


class AdminActionListResponse(BaseModel):
    success: bool = True
    data: list[AdminActionEntry]
    pagination: Pagination


class ActionBreakdown(BaseModel):
    success: int
    failure: int
    total: int


class AuthStats(BaseModel):
    period_days: int
    total: int
    successful: int
    failed: int
    by_action: dict[str, ActionBreakdown]


class AuthStatsResponse(BaseModel):
    success: bool = True
    data: AuthStats


class FailedAttemptEntry(BaseModel):
    email: str
    count: int
    last_attempt: datetime


class FailedAttemptsResponse(BaseModel):
    success: bool = True
    window_minutes: int
    data: list[FailedAttemptEntry]

"""
Store interfaces the auth components are written against.

Two implementations exist: careauth.storage.sql (SQLAlchemy async, one
AsyncSession per request) and careauth.storage.memory (process-local, for
development and tests).  Business rules never live here; stores only read
and write records.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from careauth.auth.constants import AdminActionType, OTPPurpose, UserType, VerificationStatus
from careauth.auth.models import (
    Account,
    AdminActionLog,
    AuthLog,
    AuthSession,
    OTPRecord,
)


@dataclass(frozen=True)
class AccountFilter:
    is_active: bool | None = None
    verification_status: VerificationStatus | None = None
    search: str | None = None


@dataclass(frozen=True)
class AuthLogFilter:
    action: str | None = None
    success: bool | None = None
    email: str | None = None
    user_id: uuid.UUID | None = None
    user_type: UserType | None = None
    since: datetime | None = None
    until: datetime | None = None


@dataclass(frozen=True)
class ActionCount:
    action: str
    success: bool
    count: int


@dataclass(frozen=True)
class FailedAttempts:
    email: str
    count: int
    last_attempt: datetime


class AccountStore(Protocol):
    async def get(self, user_type: UserType, account_id: uuid.UUID) -> Account | None: ...

    async def find_by_email(self, user_type: UserType, email: str) -> Account | None: ...

    async def email_taken(self, email: str) -> bool:
        """True when any role's collection already holds ``email``."""
        ...

    async def add(self, account: Account) -> Account: ...

    async def save(self, account: Account) -> None: ...

    async def delete(self, account: Account) -> None: ...

    async def list_accounts(
        self, user_type: UserType, filters: AccountFilter, *, offset: int, limit: int
    ) -> tuple[list[Account], int]:
        """Newest first; ``search`` matches name, email or contact number."""
        ...


class OtpStore(Protocol):
    async def add(self, record: OTPRecord) -> OTPRecord: ...

    async def latest(
        self, email: str, purpose: OTPPurpose, *, unverified_only: bool
    ) -> OTPRecord | None: ...

    async def delete_unverified(self, email: str, purpose: OTPPurpose) -> int: ...

    async def save(self, record: OTPRecord) -> None: ...

    async def delete(self, record: OTPRecord) -> None: ...

    async def delete_expired(self, now: datetime) -> int: ...


class SessionStore(Protocol):
    async def add(self, record: AuthSession) -> AuthSession: ...

    async def get(self, session_id: uuid.UUID) -> AuthSession | None: ...

    async def find_active_by_token(self, token: str, now: datetime) -> AuthSession | None: ...

    async def list_active(
        self, user_id: uuid.UUID, user_type: UserType, now: datetime
    ) -> list[AuthSession]: ...

    async def count_active(self, user_id: uuid.UUID, user_type: UserType, now: datetime) -> int: ...

    async def deactivate_all(
        self,
        user_id: uuid.UUID,
        user_type: UserType,
        reason: str,
        *,
        except_token: str | None = None,
    ) -> int:
        """Deactivate every ``is_active`` session of the account, expired or not."""
        ...

    async def deactivate(self, record: AuthSession, reason: str) -> None: ...

    async def touch(self, token: str, now: datetime) -> None: ...

    async def deactivate_expired(self, now: datetime, reason: str) -> int: ...

    async def delete_inactive_before(self, cutoff: datetime) -> int: ...


class AuditStore(Protocol):
    async def add_auth_log(self, entry: AuthLog) -> AuthLog: ...

    async def add_admin_log(self, entry: AdminActionLog) -> AdminActionLog: ...

    async def list_auth_logs(
        self, filters: AuthLogFilter, *, offset: int, limit: int
    ) -> tuple[list[AuthLog], int]: ...

    async def list_admin_logs(
        self,
        *,
        admin_id: uuid.UUID | None,
        action_type: AdminActionType | None,
        offset: int,
        limit: int,
    ) -> tuple[list[AdminActionLog], int]: ...

    async def action_counts(self, since: datetime) -> list[ActionCount]: ...

    async def failed_attempts(self, actions: list[str], since: datetime) -> list[FailedAttempts]: ...


@dataclass
class Stores:
    """Everything the auth components read from and write to."""

    accounts: AccountStore
    otps: OtpStore
    sessions: SessionStore
    audit: AuditStore

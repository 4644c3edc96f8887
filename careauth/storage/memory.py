"""
In-process stores for development and tests (STORAGE_BACKEND=memory).

Each method runs to completion without awaiting anything, so on a single
event loop every operation is atomic.  Records are the same mapped classes
the SQL stores use, built transient and never attached to a Session.
"""
from __future__ import annotations

import uuid
from collections import Counter
from datetime import datetime

from careauth.auth.constants import AdminActionType, OTPPurpose, UserType
from careauth.auth.models import (
    Account,
    AdminActionLog,
    AuthLog,
    AuthSession,
    OTPRecord,
)
from careauth.database import utcnow, with_defaults
from careauth.storage.base import (
    AccountFilter,
    ActionCount,
    AuthLogFilter,
    FailedAttempts,
    Stores,
)


class MemoryAccountStore:
    def __init__(self) -> None:
        self._rows: dict[UserType, dict[uuid.UUID, Account]] = {t: {} for t in UserType}

    async def get(self, user_type: UserType, account_id: uuid.UUID) -> Account | None:
        return self._rows[user_type].get(account_id)

    async def find_by_email(self, user_type: UserType, email: str) -> Account | None:
        email = email.lower()
        for account in self._rows[user_type].values():
            if account.email.lower() == email:
                return account
        return None

    async def email_taken(self, email: str) -> bool:
        for user_type in UserType:
            if await self.find_by_email(user_type, email) is not None:
                return True
        return False

    async def add(self, account: Account) -> Account:
        with_defaults(account)
        if await self.email_taken(account.email):
            raise ValueError(f"duplicate email {account.email}")
        self._rows[account.user_type][account.id] = account
        return account

    async def save(self, account: Account) -> None:
        account.updated_at = utcnow()

    async def delete(self, account: Account) -> None:
        self._rows[account.user_type].pop(account.id, None)

    async def list_accounts(
        self, user_type: UserType, filters: AccountFilter, *, offset: int, limit: int
    ) -> tuple[list[Account], int]:
        rows = [a for a in self._rows[user_type].values() if _account_matches(a, filters)]
        rows.sort(key=lambda a: a.created_at, reverse=True)
        return rows[offset:offset + limit], len(rows)


def _account_matches(account: Account, filters: AccountFilter) -> bool:
    if filters.is_active is not None and account.is_active != filters.is_active:
        return False
    if (
        filters.verification_status is not None
        and account.verification_status != filters.verification_status
    ):
        return False
    if filters.search:
        needle = filters.search.lower()
        haystack = [account.name, account.email, getattr(account, "contact_number", None)]
        return any(needle in value.lower() for value in haystack if value)
    return True


class MemoryOtpStore:
    def __init__(self) -> None:
        self._rows: dict[uuid.UUID, OTPRecord] = {}

    async def add(self, record: OTPRecord) -> OTPRecord:
        with_defaults(record)
        self._rows[record.id] = record
        return record

    async def latest(
        self, email: str, purpose: OTPPurpose, *, unverified_only: bool
    ) -> OTPRecord | None:
        matches = [
            r for r in self._rows.values()
            if r.email == email
            and r.purpose == purpose
            and not (unverified_only and r.verified)
        ]
        if not matches:
            return None
        return max(matches, key=lambda r: r.created_at)

    async def delete_unverified(self, email: str, purpose: OTPPurpose) -> int:
        doomed = [
            r.id for r in self._rows.values()
            if r.email == email and r.purpose == purpose and not r.verified
        ]
        for record_id in doomed:
            del self._rows[record_id]
        return len(doomed)

    async def save(self, record: OTPRecord) -> None:
        return None

    async def delete(self, record: OTPRecord) -> None:
        self._rows.pop(record.id, None)

    async def delete_expired(self, now: datetime) -> int:
        doomed = [r.id for r in self._rows.values() if r.expires_at < now]
        for record_id in doomed:
            del self._rows[record_id]
        return len(doomed)


class MemorySessionStore:
    def __init__(self) -> None:
        self._rows: dict[uuid.UUID, AuthSession] = {}

    def _active_for(self, user_id: uuid.UUID, user_type: UserType) -> list[AuthSession]:
        return [
            s for s in self._rows.values()
            if s.user_id == user_id and s.user_type == user_type and s.is_active
        ]

    async def add(self, record: AuthSession) -> AuthSession:
        with_defaults(record)
        if self._active_for(record.user_id, record.user_type):
            raise ValueError(f"active session already exists for {record.user_id}")
        self._rows[record.id] = record
        return record

    async def get(self, session_id: uuid.UUID) -> AuthSession | None:
        return self._rows.get(session_id)

    async def find_active_by_token(self, token: str, now: datetime) -> AuthSession | None:
        for record in self._rows.values():
            if record.token == token and record.is_active and record.expires_at > now:
                return record
        return None

    async def list_active(
        self, user_id: uuid.UUID, user_type: UserType, now: datetime
    ) -> list[AuthSession]:
        active = [s for s in self._active_for(user_id, user_type) if s.expires_at > now]
        return sorted(active, key=lambda s: s.last_activity, reverse=True)

    async def count_active(self, user_id: uuid.UUID, user_type: UserType, now: datetime) -> int:
        return len(await self.list_active(user_id, user_type, now))

    async def deactivate_all(
        self,
        user_id: uuid.UUID,
        user_type: UserType,
        reason: str,
        *,
        except_token: str | None = None,
    ) -> int:
        count = 0
        for record in self._active_for(user_id, user_type):
            if except_token is not None and record.token == except_token:
                continue
            record.is_active = False
            record.revoked_reason = reason
            record.updated_at = utcnow()
            count += 1
        return count

    async def deactivate(self, record: AuthSession, reason: str) -> None:
        record.is_active = False
        record.revoked_reason = reason
        record.updated_at = utcnow()

    async def touch(self, token: str, now: datetime) -> None:
        for record in self._rows.values():
            if record.token == token and record.is_active:
                record.last_activity = now

    async def deactivate_expired(self, now: datetime, reason: str) -> int:
        count = 0
        for record in self._rows.values():
            if record.is_active and record.expires_at < now:
                record.is_active = False
                record.revoked_reason = reason
                record.updated_at = now
                count += 1
        return count

    async def delete_inactive_before(self, cutoff: datetime) -> int:
        doomed = [
            s.id for s in self._rows.values()
            if not s.is_active and s.updated_at < cutoff
        ]
        for session_id in doomed:
            del self._rows[session_id]
        return len(doomed)


def _matches(entry: AuthLog, filters: AuthLogFilter) -> bool:
    if filters.action is not None and entry.action != filters.action:
        return False
    if filters.success is not None and entry.success is not filters.success:
        return False
    if filters.email is not None and entry.email.lower() != filters.email.lower():
        return False
    if filters.user_id is not None and entry.user_id != filters.user_id:
        return False
    if filters.user_type is not None and entry.user_type != filters.user_type:
        return False
    if filters.since is not None and entry.created_at < filters.since:
        return False
    if filters.until is not None and entry.created_at > filters.until:
        return False
    return True


class MemoryAuditStore:
    def __init__(self) -> None:
        self.auth_logs: list[AuthLog] = []
        self.admin_logs: list[AdminActionLog] = []

    async def add_auth_log(self, entry: AuthLog) -> AuthLog:
        self.auth_logs.append(with_defaults(entry))
        return entry

    async def add_admin_log(self, entry: AdminActionLog) -> AdminActionLog:
        self.admin_logs.append(with_defaults(entry))
        return entry

    async def list_auth_logs(
        self, filters: AuthLogFilter, *, offset: int, limit: int
    ) -> tuple[list[AuthLog], int]:
        rows = [e for e in reversed(self.auth_logs) if _matches(e, filters)]
        return rows[offset:offset + limit], len(rows)

    async def list_admin_logs(
        self,
        *,
        admin_id: uuid.UUID | None,
        action_type: AdminActionType | None,
        offset: int,
        limit: int,
    ) -> tuple[list[AdminActionLog], int]:
        rows = [
            e for e in reversed(self.admin_logs)
            if (admin_id is None or e.admin_id == admin_id)
            and (action_type is None or e.action_type == action_type)
        ]
        return rows[offset:offset + limit], len(rows)

    async def action_counts(self, since: datetime) -> list[ActionCount]:
        counts = Counter(
            (e.action, e.success) for e in self.auth_logs if e.created_at >= since
        )
        return [
            ActionCount(action=action, success=success, count=count)
            for (action, success), count in sorted(counts.items())
        ]

    async def failed_attempts(self, actions: list[str], since: datetime) -> list[FailedAttempts]:
        counts: Counter[str] = Counter()
        last: dict[str, datetime] = {}
        for entry in self.auth_logs:
            if entry.success or entry.action not in actions or entry.created_at < since:
                continue
            counts[entry.email] += 1
            last[entry.email] = max(last.get(entry.email, entry.created_at), entry.created_at)
        return [
            FailedAttempts(email=email, count=count, last_attempt=last[email])
            for email, count in counts.most_common()
        ]


class MemoryStores(Stores):
    """A Stores bundle whose state lives as long as the object."""

    def __init__(self) -> None:
        super().__init__(
            accounts=MemoryAccountStore(),
            otps=MemoryOtpStore(),
            sessions=MemorySessionStore(),
            audit=MemoryAuditStore(),
        )

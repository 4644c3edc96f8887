"""
SQLAlchemy async stores.

Rules:
  - Only ``session.flush()``; the request unit of work (database.session_scope)
    owns commit / rollback.
  - Case-insensitive email lookups; callers pass normalised addresses but
    legacy rows may be mixed-case.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from careauth.auth.constants import AdminActionType, OTPPurpose, UserType
from careauth.auth.models import (
    ACCOUNT_MODELS,
    Account,
    AdminActionLog,
    AuthLog,
    AuthSession,
    OTPRecord,
)
from careauth.database import utcnow
from careauth.storage.base import (
    AccountFilter,
    ActionCount,
    AuthLogFilter,
    FailedAttempts,
    Stores,
)

logger = logging.getLogger(__name__)


# ── Accounts ──────────────────────────────────────────────────────────────────

class SqlAccountStore:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, user_type: UserType, account_id: uuid.UUID) -> Account | None:
        return await self.session.get(ACCOUNT_MODELS[user_type], account_id)

    async def find_by_email(self, user_type: UserType, email: str) -> Account | None:
        model = ACCOUNT_MODELS[user_type]
        result = await self.session.execute(
            sa.select(model).where(sa.func.lower(model.email) == email.lower())
        )
        return result.scalar_one_or_none()

    async def email_taken(self, email: str) -> bool:
        for model in ACCOUNT_MODELS.values():
            result = await self.session.execute(
                sa.select(model.id).where(sa.func.lower(model.email) == email.lower())
            )
            if result.first() is not None:
                return True
        return False

    async def add(self, account: Account) -> Account:
        self.session.add(account)
        await self.session.flush()
        return account

    async def save(self, account: Account) -> None:
        await self.session.flush()

    async def delete(self, account: Account) -> None:
        await self.session.delete(account)
        await self.session.flush()

    async def list_accounts(
        self, user_type: UserType, filters: AccountFilter, *, offset: int, limit: int
    ) -> tuple[list[Account], int]:
        model = ACCOUNT_MODELS[user_type]
        conditions = _account_conditions(model, filters)
        total = (
            await self.session.execute(
                sa.select(sa.func.count()).select_from(model).where(*conditions)
            )
        ).scalar_one()
        result = await self.session.execute(
            sa.select(model)
            .where(*conditions)
            .order_by(model.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total


def _account_conditions(model: type[Account], filters: AccountFilter) -> list:
    conditions = []
    if filters.is_active is not None:
        conditions.append(model.is_active.is_(filters.is_active))
    if filters.verification_status is not None:
        conditions.append(model.verification_status == filters.verification_status)
    if filters.search:
        pattern = f"%{filters.search}%"
        columns = [model.name, model.email]
        if hasattr(model, "contact_number"):
            columns.append(model.contact_number)
        conditions.append(sa.or_(*(column.ilike(pattern) for column in columns)))
    return conditions


# ── OTP records ───────────────────────────────────────────────────────────────

class SqlOtpStore:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add(self, record: OTPRecord) -> OTPRecord:
        self.session.add(record)
        await self.session.flush()
        return record

    async def latest(
        self, email: str, purpose: OTPPurpose, *, unverified_only: bool
    ) -> OTPRecord | None:
        stmt = sa.select(OTPRecord).where(
            OTPRecord.email == email,
            OTPRecord.purpose == purpose,
        )
        if unverified_only:
            stmt = stmt.where(OTPRecord.verified.is_(False))
        stmt = stmt.order_by(OTPRecord.created_at.desc()).limit(1)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def delete_unverified(self, email: str, purpose: OTPPurpose) -> int:
        result = await self.session.execute(
            sa.delete(OTPRecord).where(
                OTPRecord.email == email,
                OTPRecord.purpose == purpose,
                OTPRecord.verified.is_(False),
            )
        )
        return result.rowcount or 0

    async def save(self, record: OTPRecord) -> None:
        await self.session.flush()

    async def delete(self, record: OTPRecord) -> None:
        await self.session.delete(record)
        await self.session.flush()

    async def delete_expired(self, now: datetime) -> int:
        result = await self.session.execute(
            sa.delete(OTPRecord).where(OTPRecord.expires_at < now)
        )
        return result.rowcount or 0


# ── Device sessions ───────────────────────────────────────────────────────────

class SqlSessionStore:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add(self, record: AuthSession) -> AuthSession:
        """
        Insert inside a savepoint.

        If the partial unique index reports another active session (a login
        that committed between our enforcement and this insert), deactivate
        it and retry once.
        """
        try:
            async with self.session.begin_nested():
                self.session.add(record)
        except IntegrityError:
            logger.warning(
                "Concurrent active session for %s %s; re-enforcing",
                record.user_type.value, record.user_id,
            )
            await self.deactivate_all(
                record.user_id, record.user_type, "Superseded by concurrent login"
            )
            async with self.session.begin_nested():
                self.session.add(record)
        return record

    async def get(self, session_id: uuid.UUID) -> AuthSession | None:
        return await self.session.get(AuthSession, session_id)

    async def find_active_by_token(self, token: str, now: datetime) -> AuthSession | None:
        result = await self.session.execute(
            sa.select(AuthSession).where(
                AuthSession.token == token,
                AuthSession.is_active.is_(True),
                AuthSession.expires_at > now,
            )
        )
        return result.scalar_one_or_none()

    async def list_active(
        self, user_id: uuid.UUID, user_type: UserType, now: datetime
    ) -> list[AuthSession]:
        result = await self.session.execute(
            sa.select(AuthSession)
            .where(
                AuthSession.user_id == user_id,
                AuthSession.user_type == user_type,
                AuthSession.is_active.is_(True),
                AuthSession.expires_at > now,
            )
            .order_by(AuthSession.last_activity.desc())
        )
        return list(result.scalars().all())

    async def count_active(self, user_id: uuid.UUID, user_type: UserType, now: datetime) -> int:
        result = await self.session.execute(
            sa.select(sa.func.count())
            .select_from(AuthSession)
            .where(
                AuthSession.user_id == user_id,
                AuthSession.user_type == user_type,
                AuthSession.is_active.is_(True),
                AuthSession.expires_at > now,
            )
        )
        return result.scalar_one()

    async def deactivate_all(
        self,
        user_id: uuid.UUID,
        user_type: UserType,
        reason: str,
        *,
        except_token: str | None = None,
    ) -> int:
        stmt = (
            sa.update(AuthSession)
            .where(
                AuthSession.user_id == user_id,
                AuthSession.user_type == user_type,
                AuthSession.is_active.is_(True),
            )
            .values(is_active=False, revoked_reason=reason, updated_at=utcnow())
            .execution_options(synchronize_session="fetch")
        )
        if except_token is not None:
            stmt = stmt.where(AuthSession.token != except_token)
        result = await self.session.execute(stmt)
        return result.rowcount or 0

    async def deactivate(self, record: AuthSession, reason: str) -> None:
        record.is_active = False
        record.revoked_reason = reason
        await self.session.flush()

    async def touch(self, token: str, now: datetime) -> None:
        await self.session.execute(
            sa.update(AuthSession)
            .where(AuthSession.token == token, AuthSession.is_active.is_(True))
            .values(last_activity=now)
            .execution_options(synchronize_session="fetch")
        )

    async def deactivate_expired(self, now: datetime, reason: str) -> int:
        result = await self.session.execute(
            sa.update(AuthSession)
            .where(AuthSession.is_active.is_(True), AuthSession.expires_at < now)
            .values(is_active=False, revoked_reason=reason, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def delete_inactive_before(self, cutoff: datetime) -> int:
        result = await self.session.execute(
            sa.delete(AuthSession).where(
                AuthSession.is_active.is_(False),
                AuthSession.updated_at < cutoff,
            )
        )
        return result.rowcount or 0


# ── Audit ─────────────────────────────────────────────────────────────────────

def _auth_log_conditions(filters: AuthLogFilter) -> list:
    conditions = []
    if filters.action is not None:
        conditions.append(AuthLog.action == filters.action)
    if filters.success is not None:
        conditions.append(AuthLog.success.is_(filters.success))
    if filters.email is not None:
        conditions.append(sa.func.lower(AuthLog.email) == filters.email.lower())
    if filters.user_id is not None:
        conditions.append(AuthLog.user_id == filters.user_id)
    if filters.user_type is not None:
        conditions.append(AuthLog.user_type == filters.user_type)
    if filters.since is not None:
        conditions.append(AuthLog.created_at >= filters.since)
    if filters.until is not None:
        conditions.append(AuthLog.created_at <= filters.until)
    return conditions


class SqlAuditStore:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add_auth_log(self, entry: AuthLog) -> AuthLog:
        # Savepoint: a failed audit insert must not poison the request transaction.
        async with self.session.begin_nested():
            self.session.add(entry)
        return entry

    async def add_admin_log(self, entry: AdminActionLog) -> AdminActionLog:
        async with self.session.begin_nested():
            self.session.add(entry)
        return entry

    async def list_auth_logs(
        self, filters: AuthLogFilter, *, offset: int, limit: int
    ) -> tuple[list[AuthLog], int]:
        conditions = _auth_log_conditions(filters)
        total = (
            await self.session.execute(
                sa.select(sa.func.count()).select_from(AuthLog).where(*conditions)
            )
        ).scalar_one()
        result = await self.session.execute(
            sa.select(AuthLog)
            .where(*conditions)
            .order_by(AuthLog.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def list_admin_logs(
        self,
        *,
        admin_id: uuid.UUID | None,
        action_type: AdminActionType | None,
        offset: int,
        limit: int,
    ) -> tuple[list[AdminActionLog], int]:
        conditions = []
        if admin_id is not None:
            conditions.append(AdminActionLog.admin_id == admin_id)
        if action_type is not None:
            conditions.append(AdminActionLog.action_type == action_type)
        total = (
            await self.session.execute(
                sa.select(sa.func.count()).select_from(AdminActionLog).where(*conditions)
            )
        ).scalar_one()
        result = await self.session.execute(
            sa.select(AdminActionLog)
            .where(*conditions)
            .order_by(AdminActionLog.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def action_counts(self, since: datetime) -> list[ActionCount]:
        result = await self.session.execute(
            sa.select(AuthLog.action, AuthLog.success, sa.func.count())
            .where(AuthLog.created_at >= since)
            .group_by(AuthLog.action, AuthLog.success)
            .order_by(AuthLog.action)
        )
        return [ActionCount(action=a, success=s, count=c) for a, s, c in result.all()]

    async def failed_attempts(self, actions: list[str], since: datetime) -> list[FailedAttempts]:
        result = await self.session.execute(
            sa.select(AuthLog.email, sa.func.count(), sa.func.max(AuthLog.created_at))
            .where(
                AuthLog.success.is_(False),
                AuthLog.action.in_(actions),
                AuthLog.created_at >= since,
            )
            .group_by(AuthLog.email)
            .order_by(sa.func.count().desc())
        )
        return [
            FailedAttempts(email=email, count=count, last_attempt=last)
            for email, count, last in result.all()
        ]


def sql_stores(session: AsyncSession) -> Stores:
    return Stores(
        accounts=SqlAccountStore(session),
        otps=SqlOtpStore(session),
        sessions=SqlSessionStore(session),
        audit=SqlAuditStore(session),
    )

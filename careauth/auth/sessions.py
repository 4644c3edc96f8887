"""
Session registry: device sessions behind every issued token.

Invariant: per (user_id, user_type) at most one session is active at a time.
open_session() holds a keyed lock around enforce-then-create so two logins
finishing together cannot both observe "no prior session"; the SQL store's
partial unique index backs this up across processes.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta

from careauth.auth.constants import (
    REVOKED_BY_USER,
    REVOKED_EXPIRED,
    REVOKED_OTHER_DEVICES,
    REVOKED_SINGLE_DEVICE,
    UserType,
)
from careauth.auth.locks import KeyedLock, session_lock_key
from careauth.auth.models import AuthSession
from careauth.auth.utils import RequestContext
from careauth.database import utcnow, with_defaults
from careauth.exceptions import SessionNotFound
from careauth.storage.base import SessionStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnforcementResult:
    revoked_count: int
    had_prior_device: bool


async def enforce_single_device(
    store: SessionStore, user_id: uuid.UUID, user_type: UserType
) -> EnforcementResult:
    """Deactivate every active session of the account ahead of a new login."""
    prior = await store.count_active(user_id, user_type, utcnow())
    # Expired-but-active rows are closed too so the new row never collides with them.
    await store.deactivate_all(user_id, user_type, REVOKED_SINGLE_DEVICE)
    if prior:
        logger.info(
            "Single-device enforcement revoked %d session(s) for %s %s",
            prior, user_type.value, user_id,
        )
    return EnforcementResult(revoked_count=prior, had_prior_device=prior > 0)


async def create(
    store: SessionStore,
    *,
    user_id: uuid.UUID,
    user_type: UserType,
    token: str,
    ctx: RequestContext,
    expire_seconds: int,
) -> AuthSession:
    now = utcnow()
    record = with_defaults(
        AuthSession(
            user_id=user_id,
            user_type=user_type,
            token=token,
            device_info=ctx.device_info,
            ip_address=ctx.ip_address,
            user_agent=ctx.user_agent,
            last_activity=now,
            created_at=now,
            updated_at=now,
            expires_at=now + timedelta(seconds=expire_seconds),
            is_active=True,
        )
    )
    return await store.add(record)


async def open_session(
    store: SessionStore,
    locks: KeyedLock,
    *,
    user_id: uuid.UUID,
    user_type: UserType,
    token: str,
    ctx: RequestContext,
    expire_seconds: int,
) -> tuple[AuthSession, EnforcementResult]:
    """Enforce-then-create under the per-account lock."""
    async with locks.hold(session_lock_key(user_id, user_type.value)):
        enforcement = await enforce_single_device(store, user_id, user_type)
        record = await create(
            store,
            user_id=user_id,
            user_type=user_type,
            token=token,
            ctx=ctx,
            expire_seconds=expire_seconds,
        )
    return record, enforcement


async def find_by_token(store: SessionStore, token: str) -> AuthSession | None:
    """Only active, unexpired sessions authenticate."""
    return await store.find_active_by_token(token, utcnow())


async def touch(store: SessionStore, token: str) -> None:
    """Refresh last_activity.  Never raises."""
    try:
        await store.touch(token, utcnow())
    except Exception:
        logger.warning("Could not refresh session activity", exc_info=True)


async def list_active(
    store: SessionStore, user_id: uuid.UUID, user_type: UserType
) -> list[AuthSession]:
    return await store.list_active(user_id, user_type, utcnow())


async def revoke(
    store: SessionStore,
    session_id: uuid.UUID,
    *,
    user_id: uuid.UUID,
    user_type: UserType,
    reason: str = REVOKED_BY_USER,
) -> AuthSession:
    record = await store.get(session_id)
    if (
        record is None
        or record.user_id != user_id
        or record.user_type != user_type
        or not record.is_active
    ):
        raise SessionNotFound()
    await store.deactivate(record, reason)
    return record


async def revoke_token(store: SessionStore, token: str, reason: str) -> bool:
    record = await store.find_active_by_token(token, utcnow())
    if record is None:
        return False
    await store.deactivate(record, reason)
    return True


async def revoke_all_except(
    store: SessionStore, user_id: uuid.UUID, user_type: UserType, except_token: str
) -> int:
    return await store.deactivate_all(
        user_id, user_type, REVOKED_OTHER_DEVICES, except_token=except_token
    )


async def revoke_all(
    store: SessionStore, user_id: uuid.UUID, user_type: UserType, reason: str
) -> int:
    return await store.deactivate_all(user_id, user_type, reason)


# ── Maintenance ───────────────────────────────────────────────────────────────

async def sweep_expired(store: SessionStore) -> int:
    return await store.deactivate_expired(utcnow(), REVOKED_EXPIRED)


async def purge_old(store: SessionStore, days_old: int) -> int:
    return await store.delete_inactive_before(utcnow() - timedelta(days=days_old))

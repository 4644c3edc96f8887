"""
Periodic session maintenance, run as a background task from the app lifespan.

  sweep  every SESSION_SWEEP_INTERVAL_SECONDS: deactivate expired sessions
         and delete expired OTP records
  purge  every SESSION_PURGE_INTERVAL_SECONDS: delete inactive sessions older
         than SESSION_RETENTION_DAYS
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

from careauth.auth import otp, sessions
from careauth.config import Settings
from careauth.database import session_scope
from careauth.storage.base import Stores
from careauth.storage.sql import sql_stores

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def _with_stores(memory_stores: Stores | None, job: Callable[[Stores], Awaitable[T]]) -> T:
    if memory_stores is not None:
        return await job(memory_stores)
    async with session_scope() as session:
        return await job(sql_stores(session))


async def sweep(stores: Stores) -> tuple[int, int]:
    """Return (sessions deactivated, OTP records deleted)."""
    expired_sessions = await sessions.sweep_expired(stores.sessions)
    expired_otps = await otp.purge_expired(stores.otps)
    return expired_sessions, expired_otps


async def purge(stores: Stores, retention_days: int) -> int:
    return await sessions.purge_old(stores.sessions, retention_days)


async def run_maintenance(settings: Settings, memory_stores: Stores | None = None) -> None:
    """Loop until cancelled; a failed iteration is logged and the loop carries on."""
    interval = max(settings.session_sweep_interval_seconds, 1)
    next_purge = time.monotonic()
    try:
        while True:
            try:
                swept, otps = await _with_stores(memory_stores, sweep)
                if swept or otps:
                    logger.info("Maintenance: %d expired session(s), %d expired OTP(s)", swept, otps)
                if time.monotonic() >= next_purge:
                    purged = await _with_stores(
                        memory_stores,
                        lambda stores: purge(stores, settings.session_retention_days),
                    )
                    next_purge = time.monotonic() + settings.session_purge_interval_seconds
                    if purged:
                        logger.info("Maintenance: purged %d old session(s)", purged)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Session maintenance iteration failed")
            await asyncio.sleep(interval)
    except asyncio.CancelledError:
        logger.info("Session maintenance task cancelled")
        raise

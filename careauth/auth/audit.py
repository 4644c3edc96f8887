"""
Audit logger: append-only auth and admin action entries.

Writes never raise: an audit failure is logged and the auth flow carries on.
"""
from __future__ import annotations

import logging
import uuid
from datetime import timedelta
from typing import Any

from fastapi.encoders import jsonable_encoder

from careauth.auth.constants import (
    FAILED_LOGIN_ACTIONS,
    AdminActionType,
    AuthAction,
    UserType,
)
from careauth.auth.models import Account, AdminActionLog, AuthLog
from careauth.auth.utils import RequestContext
from careauth.database import utcnow
from careauth.storage.base import AuditStore, AuthLogFilter, FailedAttempts

logger = logging.getLogger(__name__)


async def record(
    store: AuditStore,
    action: AuthAction,
    *,
    email: str,
    success: bool,
    ctx: RequestContext | None = None,
    account: Account | None = None,
    user_type: UserType | None = None,
    failure_reason: str | None = None,
    details: dict[str, Any] | None = None,
) -> AuthLog | None:
    ctx = ctx or RequestContext()
    try:
        entry = AuthLog(
            user_id=account.id if account is not None else None,
            user_type=account.user_type if account is not None else user_type,
            email=email,
            action=action.value,
            success=success,
            failure_reason=failure_reason,
            ip_address=ctx.ip_address,
            user_agent=ctx.user_agent,
            details=jsonable_encoder(details or {}),
            created_at=utcnow(),
        )
        return await store.add_auth_log(entry)
    except Exception:
        logger.exception("Failed to write auth log (%s for %s)", action.value, email)
        return None


async def record_admin_action(
    store: AuditStore,
    action_type: AdminActionType,
    *,
    admin_id: uuid.UUID,
    target: Account | None = None,
    previous_data: dict[str, Any] | None = None,
    new_data: dict[str, Any] | None = None,
    reason: str | None = None,
    ctx: RequestContext | None = None,
) -> AdminActionLog | None:
    ctx = ctx or RequestContext()
    try:
        entry = AdminActionLog(
            admin_id=admin_id,
            action_type=action_type,
            target_user_id=target.id if target is not None else None,
            target_user_type=target.user_type if target is not None else None,
            previous_data=jsonable_encoder(previous_data or {}),
            new_data=jsonable_encoder(new_data or {}),
            reason=reason,
            ip_address=ctx.ip_address,
            user_agent=ctx.user_agent,
            created_at=utcnow(),
        )
        return await store.add_admin_log(entry)
    except Exception:
        logger.exception("Failed to write admin action log (%s by %s)", action_type.value, admin_id)
        return None


# ── Queries ───────────────────────────────────────────────────────────────────

async def list_auth_logs(
    store: AuditStore, filters: AuthLogFilter, *, page: int, limit: int
) -> tuple[list[AuthLog], int]:
    return await store.list_auth_logs(filters, offset=(page - 1) * limit, limit=limit)


async def list_admin_logs(
    store: AuditStore,
    *,
    admin_id: uuid.UUID | None = None,
    action_type: AdminActionType | None = None,
    page: int,
    limit: int,
) -> tuple[list[AdminActionLog], int]:
    return await store.list_admin_logs(
        admin_id=admin_id,
        action_type=action_type,
        offset=(page - 1) * limit,
        limit=limit,
    )


async def stats(store: AuditStore, *, days: int) -> dict[str, Any]:
    """Totals plus per-action success / failure counts over the last ``days``."""
    rows = await store.action_counts(utcnow() - timedelta(days=days))
    by_action: dict[str, dict[str, int]] = {}
    for row in rows:
        bucket = by_action.setdefault(row.action, {"success": 0, "failure": 0, "total": 0})
        bucket["success" if row.success else "failure"] += row.count
        bucket["total"] += row.count
    successful = sum(b["success"] for b in by_action.values())
    failed = sum(b["failure"] for b in by_action.values())
    return {
        "period_days": days,
        "total": successful + failed,
        "successful": successful,
        "failed": failed,
        "by_action": by_action,
    }


async def failed_login_attempts(store: AuditStore, *, minutes: int = 15) -> list[FailedAttempts]:
    return await store.failed_attempts(
        sorted(a.value for a in FAILED_LOGIN_ACTIONS),
        utcnow() - timedelta(minutes=minutes),
    )

"""
Admin domain: account moderation, audit queries and admin provisioning.

Pure business logic over explicit stores (zero FastAPI request handling).
Every moderation step writes one AdminActionLog entry with the before and
after state of the fields it touched.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from careauth.admin.appointments import AppointmentCanceller
from careauth.auth import audit, credentials, sessions
from careauth.auth.constants import (
    REVOKED_SUSPENDED,
    AdminActionType,
    Role,
    UserType,
    VerificationStatus,
)
from careauth.auth.models import Account, AdminActionLog, AuthLog, Doctor
from careauth.auth.service import Principal
from careauth.auth.utils import RequestContext, normalize_email
from careauth.exceptions import AccountNotFound, Forbidden, ValidationFailed
from careauth.storage.base import AccountFilter, AuthLogFilter, FailedAttempts, Stores

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatusChange:
    account: Account
    revoked_sessions: int
    cancelled_appointments: int


def _status_snapshot(account: Account) -> dict[str, Any]:
    return {
        "is_active": account.is_active,
        "suspended_by": account.suspended_by,
        "suspended_at": account.suspended_at,
        "suspension_reason": account.suspension_reason,
    }


def _guard_target(caller: Principal, target: Account) -> None:
    if target.id == caller.account.id and target.user_type is caller.user_type:
        raise Forbidden("You cannot moderate your own account.")
    if target.user_type is UserType.ADMIN and caller.role is not Role.SUPER_ADMIN:
        raise Forbidden("Only a super admin can moderate admin accounts.")


async def get_account(stores: Stores, user_type: UserType, user_id: uuid.UUID) -> Account:
    account = await stores.accounts.get(user_type, user_id)
    if account is None:
        raise AccountNotFound()
    return account


# ── Moderation ────────────────────────────────────────────────────────────────

async def update_verification(
    stores: Stores,
    caller: Principal,
    *,
    user_type: UserType,
    user_id: uuid.UUID,
    status: VerificationStatus,
    reason: str | None,
    ctx: RequestContext,
) -> Account:
    """Set verification_status; a rejection also deactivates the account."""
    account = await get_account(stores, user_type, user_id)
    _guard_target(caller, account)
    previous = {
        "verification_status": account.verification_status,
        "is_active": account.is_active,
    }
    await credentials.set_verification_status(stores.accounts, account, status, caller.account.id)
    await audit.record_admin_action(
        stores.audit,
        AdminActionType.USER_VERIFICATION,
        admin_id=caller.account.id,
        target=account,
        previous_data=previous,
        new_data={
            "verification_status": account.verification_status,
            "is_active": account.is_active,
            "verified_by": account.verified_by,
            "verified_at": account.verified_at,
        },
        reason=reason,
        ctx=ctx,
    )
    return account


async def update_status(
    stores: Stores,
    appointments: AppointmentCanceller,
    caller: Principal,
    *,
    user_type: UserType,
    user_id: uuid.UUID,
    is_active: bool,
    reason: str | None,
    ctx: RequestContext,
) -> StatusChange:
    """
    Suspend or re-activate an account.

    Suspension revokes every session of the account at once and, for doctors,
    cancels their upcoming appointments.  Re-activation clears the suspension
    fields.
    """
    if not is_active and not (reason and reason.strip()):
        raise ValidationFailed("A reason is required to suspend an account.")

    account = await get_account(stores, user_type, user_id)
    _guard_target(caller, account)
    previous = _status_snapshot(account)

    revoked = 0
    cancelled = 0
    await credentials.set_suspension(
        stores.accounts,
        account,
        suspended=not is_active,
        reason=reason.strip() if reason else None,
        admin_id=caller.account.id,
    )
    if not is_active:
        revoked = await sessions.revoke_all(
            stores.sessions, account.id, account.user_type, REVOKED_SUSPENDED
        )
        if isinstance(account, Doctor):
            cancelled = await appointments.cancel_future_for_doctor(
                account.id, f"Doctor account suspended: {reason}"
            )
        logger.info(
            "Suspended %s %s: %d session(s) revoked, %d appointment(s) cancelled",
            account.user_type.value, account.id, revoked, cancelled,
        )

    await audit.record_admin_action(
        stores.audit,
        AdminActionType.USER_ACTIVATION if is_active else AdminActionType.USER_SUSPENSION,
        admin_id=caller.account.id,
        target=account,
        previous_data=previous,
        new_data={
            **_status_snapshot(account),
            "revoked_sessions": revoked,
            "cancelled_appointments": cancelled,
        },
        reason=reason,
        ctx=ctx,
    )
    return StatusChange(account=account, revoked_sessions=revoked, cancelled_appointments=cancelled)


# ── Admin provisioning ────────────────────────────────────────────────────────

async def create_admin(
    stores: Stores,
    caller: Principal | None,
    *,
    name: str,
    email: str,
    password: str,
    role: Role = Role.ADMIN,
    ctx: RequestContext | None = None,
) -> Account:
    """
    Create a verified admin account.

    ``caller`` is None only for the startup bootstrap, which has no acting
    admin and therefore writes no action log.
    """
    if role not in (Role.ADMIN, Role.SUPER_ADMIN):
        raise ValidationFailed("Admin role must be 'admin' or 'super_admin'.")
    account = await credentials.create_account(
        stores.accounts,
        role,
        name=name,
        email=email,
        password=password,
        email_verified=True,
        created_by=caller.account.id if caller is not None else None,
    )
    if caller is not None:
        await audit.record_admin_action(
            stores.audit,
            AdminActionType.ADMIN_CREATION,
            admin_id=caller.account.id,
            target=account,
            new_data={"email": account.email, "role": role},
            ctx=ctx,
        )
    return account


# ── Account directory ─────────────────────────────────────────────────────────

DIRECTORY_TYPES = (UserType.DOCTOR, UserType.PATIENT)


async def list_users(
    stores: Stores,
    *,
    user_type: UserType | None,
    is_active: bool | None,
    verification_status: VerificationStatus | None,
    search: str | None,
    page: int,
    limit: int,
) -> tuple[list[Account], int]:
    """
    Page through accounts, newest first.

    Without ``user_type`` doctors and patients are listed together; admins
    only appear when asked for explicitly.  Each collection contributes at
    most ``page * limit`` rows, which is enough to cut the merged page.
    """
    filters = AccountFilter(
        is_active=is_active,
        verification_status=verification_status,
        search=search.strip() if search and search.strip() else None,
    )
    offset = (page - 1) * limit
    if user_type is not None:
        return await stores.accounts.list_accounts(
            user_type, filters, offset=offset, limit=limit
        )

    rows: list[Account] = []
    total = 0
    for kind in DIRECTORY_TYPES:
        chunk, count = await stores.accounts.list_accounts(
            kind, filters, offset=0, limit=page * limit
        )
        rows.extend(chunk)
        total += count
    rows.sort(key=lambda account: account.created_at, reverse=True)
    return rows[offset:offset + limit], total


# ── Audit queries ─────────────────────────────────────────────────────────────

async def admin_logs(
    stores: Stores,
    *,
    admin_id: uuid.UUID | None,
    action_type: AdminActionType | None,
    page: int,
    limit: int,
) -> tuple[list[AdminActionLog], int]:
    return await audit.list_admin_logs(
        stores.audit, admin_id=admin_id, action_type=action_type, page=page, limit=limit
    )


async def auth_logs(
    stores: Stores,
    *,
    action: str | None = None,
    success: bool | None = None,
    email: str | None = None,
    user_id: uuid.UUID | None = None,
    user_type: UserType | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    page: int,
    limit: int,
) -> tuple[list[AuthLog], int]:
    filters = AuthLogFilter(
        action=action,
        success=success,
        email=normalize_email(email) if email else None,
        user_id=user_id,
        user_type=user_type,
        since=since,
        until=until,
    )
    return await audit.list_auth_logs(stores.audit, filters, page=page, limit=limit)


async def auth_stats(stores: Stores, *, days: int) -> dict[str, Any]:
    return await audit.stats(stores.audit, days=days)


async def failed_attempts(stores: Stores, *, minutes: int) -> list[FailedAttempts]:
    return await audit.failed_login_attempts(stores.audit, minutes=minutes)

"""
Admin domain: controller.

Receives validated input from the router, calls the admin service and shapes
the paginated / summary responses.
"""
from __future__ import annotations

import math
import uuid
from dataclasses import asdict
from datetime import datetime

from careauth.admin import service
from careauth.admin.appointments import AppointmentCanceller
from careauth.admin.schemas import (
    AccountKind,
    AccountResponse,
    AccountStatus,
    AdminActionEntry,
    AdminActionListResponse,
    AdminCreateRequest,
    AuthLogEntry,
    AuthLogListResponse,
    AuthStatsResponse,
    FailedAttemptEntry,
    FailedAttemptsResponse,
    Pagination,
    StatusUpdateRequest,
    StatusUpdateResponse,
    UserListResponse,
    VerificationUpdateRequest,
)
from careauth.auth.constants import AdminActionType, VerificationStatus
from careauth.auth.models import AuthLog
from careauth.auth.schemas import AccountProfile
from careauth.auth.service import Principal
from careauth.auth.utils import RequestContext
from careauth.storage.base import Stores


def _pagination(page: int, limit: int, total: int) -> Pagination:
    return Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit) if total else 0)


def _auth_log_page(rows: list[AuthLog], total: int, page: int, limit: int) -> AuthLogListResponse:
    return AuthLogListResponse(
        data=[AuthLogEntry.model_validate(row) for row in rows],
        pagination=_pagination(page, limit, total),
    )


# ── Account directory ─────────────────────────────────────────────────────────

async def list_users(
    stores: Stores,
    *,
    kind: AccountKind | None,
    account_status: AccountStatus | None,
    verification_status: VerificationStatus | None,
    search: str | None,
    page: int,
    limit: int,
) -> UserListResponse:
    rows, total = await service.list_users(
        stores,
        user_type=kind.user_type if kind else None,
        is_active=None if account_status is None else account_status is AccountStatus.ACTIVE,
        verification_status=verification_status,
        search=search,
        page=page,
        limit=limit,
    )
    return UserListResponse(
        data=[AccountProfile.model_validate(row) for row in rows],
        pagination=_pagination(page, limit, total),
    )


# ── Moderation ────────────────────────────────────────────────────────────────

async def update_verification(
    stores: Stores,
    caller: Principal,
    kind: AccountKind,
    user_id: uuid.UUID,
    body: VerificationUpdateRequest,
    ctx: RequestContext,
) -> AccountResponse:
    account = await service.update_verification(
        stores,
        caller,
        user_type=kind.user_type,
        user_id=user_id,
        status=body.verification_status,
        reason=body.reason,
        ctx=ctx,
    )
    return AccountResponse(
        message=f"Verification status set to {body.verification_status.value}.",
        data=AccountProfile.model_validate(account),
    )


async def update_status(
    stores: Stores,
    appointments: AppointmentCanceller,
    caller: Principal,
    kind: AccountKind,
    user_id: uuid.UUID,
    body: StatusUpdateRequest,
    ctx: RequestContext,
) -> StatusUpdateResponse:
    change = await service.update_status(
        stores,
        appointments,
        caller,
        user_type=kind.user_type,
        user_id=user_id,
        is_active=body.is_active,
        reason=body.reason,
        ctx=ctx,
    )
    message = "Account activated." if body.is_active else "Account suspended."
    return StatusUpdateResponse(
        message=message,
        data=AccountProfile.model_validate(change.account),
        revoked_sessions=change.revoked_sessions,
        cancelled_appointments=change.cancelled_appointments,
    )


async def create_admin(
    stores: Stores, caller: Principal, body: AdminCreateRequest, ctx: RequestContext
) -> AccountResponse:
    account = await service.create_admin(
        stores,
        caller,
        name=body.name,
        email=body.email,
        password=body.password,
        role=body.role,
        ctx=ctx,
    )
    return AccountResponse(
        message="Admin account created.",
        data=AccountProfile.model_validate(account),
    )


# ── Audit queries ─────────────────────────────────────────────────────────────

async def admin_logs(
    stores: Stores,
    *,
    admin_id: uuid.UUID | None,
    action_type: AdminActionType | None,
    page: int,
    limit: int,
) -> AdminActionListResponse:
    rows, total = await service.admin_logs(
        stores, admin_id=admin_id, action_type=action_type, page=page, limit=limit
    )
    return AdminActionListResponse(
        data=[AdminActionEntry.model_validate(row) for row in rows],
        pagination=_pagination(page, limit, total),
    )


async def auth_logs(
    stores: Stores,
    *,
    action: str | None,
    success: bool | None,
    email: str | None,
    kind: AccountKind | None,
    since: datetime | None,
    until: datetime | None,
    page: int,
    limit: int,
) -> AuthLogListResponse:
    rows, total = await service.auth_logs(
        stores,
        action=action,
        success=success,
        email=email,
        user_type=kind.user_type if kind else None,
        since=since,
        until=until,
        page=page,
        limit=limit,
    )
    return _auth_log_page(rows, total, page, limit)


async def user_auth_logs(
    stores: Stores, kind: AccountKind, user_id: uuid.UUID, *, page: int, limit: int
) -> AuthLogListResponse:
    rows, total = await service.auth_logs(
        stores, user_id=user_id, user_type=kind.user_type, page=page, limit=limit
    )
    return _auth_log_page(rows, total, page, limit)


async def email_auth_logs(
    stores: Stores, email: str, *, page: int, limit: int
) -> AuthLogListResponse:
    rows, total = await service.auth_logs(stores, email=email, page=page, limit=limit)
    return _auth_log_page(rows, total, page, limit)


async def auth_stats(stores: Stores, *, days: int) -> AuthStatsResponse:
    return AuthStatsResponse.model_validate({"data": await service.auth_stats(stores, days=days)})


async def failed_attempts(stores: Stores, *, minutes: int) -> FailedAttemptsResponse:
    rows = await service.failed_attempts(stores, minutes=minutes)
    return FailedAttemptsResponse(
        window_minutes=minutes,
        data=[FailedAttemptEntry(**asdict(row)) for row in rows],
    )

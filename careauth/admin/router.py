"""
Admin domain: moderation and audit routes.

Routes (all under /api/v1/admin, ADMIN or SUPER_ADMIN):
  GET   /users                                   Account directory with filters
  PATCH /users/{kind}/{user_id}/verification     Set verification status
  PATCH /users/{kind}/{user_id}/status           Suspend / re-activate
  GET   /logs/actions                            Admin action log
  GET   /logs/auth                               Auth log with filters
  GET   /logs/auth/users/{kind}/{user_id}        Auth log of one account
  GET   /logs/auth/email/{email}                 Auth log of one email
  GET   /logs/auth/stats                         Success / failure totals
  GET   /logs/auth/failed                        Recent failed attempts by email
  POST  /admins                                  Create an admin (SUPER_ADMIN only)

Zero business logic. Zero DB queries.
"""
import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request, status

from careauth.admin import controller as ctrl
from careauth.admin.appointments import AppointmentCanceller
from careauth.admin.schemas import (
    AccountKind,
    AccountResponse,
    AccountStatus,
    AdminActionListResponse,
    AdminCreateRequest,
    AuthLogListResponse,
    AuthStatsResponse,
    FailedAttemptsResponse,
    StatusUpdateRequest,
    StatusUpdateResponse,
    UserListResponse,
    VerificationUpdateRequest,
)
from careauth.auth.constants import AdminActionType, VerificationStatus
from careauth.auth.dependencies import (
    get_request_context,
    get_stores,
    require_admin,
    require_super_admin,
)
from careauth.auth.service import Principal
from careauth.auth.utils import RequestContext
from careauth.storage.base import Stores

router = APIRouter(prefix="/admin", tags=["admin"])


def get_appointments(request: Request) -> AppointmentCanceller:
    return request.app.state.appointments


# ── Account directory ─────────────────────────────────────────────────────────

@router.get("/users", response_model=UserListResponse, summary="[Admin] List accounts")
async def list_users(
    role: AccountKind | None = Query(default=None),
    account_status: AccountStatus | None = Query(default=None, alias="status"),
    verification_status: VerificationStatus | None = Query(default=None),
    search: str | None = Query(default=None, max_length=100),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    admin: Principal = Depends(require_admin),
    stores: Stores = Depends(get_stores),
) -> UserListResponse:
    return await ctrl.list_users(
        stores,
        kind=role,
        account_status=account_status,
        verification_status=verification_status,
        search=search,
        page=page,
        limit=limit,
    )


# ── Moderation ────────────────────────────────────────────────────────────────

@router.patch(
    "/users/{kind}/{user_id}/verification",
    response_model=AccountResponse,
    summary="[Admin] Set an account's verification status",
)
async def update_verification(
    kind: AccountKind,
    user_id: uuid.UUID,
    body: VerificationUpdateRequest,
    admin: Principal = Depends(require_admin),
    stores: Stores = Depends(get_stores),
    ctx: RequestContext = Depends(get_request_context),
) -> AccountResponse:
    return await ctrl.update_verification(stores, admin, kind, user_id, body, ctx)


@router.patch(
    "/users/{kind}/{user_id}/status",
    response_model=StatusUpdateResponse,
    summary="[Admin] Suspend or re-activate an account",
    description=(
        "Suspension revokes every session of the account immediately and, for "
        "doctors, cancels their upcoming appointments."
    ),
)
async def update_status(
    kind: AccountKind,
    user_id: uuid.UUID,
    body: StatusUpdateRequest,
    admin: Principal = Depends(require_admin),
    stores: Stores = Depends(get_stores),
    appointments: AppointmentCanceller = Depends(get_appointments),
    ctx: RequestContext = Depends(get_request_context),
) -> StatusUpdateResponse:
    return await ctrl.update_status(stores, appointments, admin, kind, user_id, body, ctx)


# ── Audit logs ────────────────────────────────────────────────────────────────

@router.get(
    "/logs/actions",
    response_model=AdminActionListResponse,
    summary="[Admin] Admin action log",
)
async def admin_logs(
    admin_id: uuid.UUID | None = Query(default=None),
    action_type: AdminActionType | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=200),
    admin: Principal = Depends(require_admin),
    stores: Stores = Depends(get_stores),
) -> AdminActionListResponse:
    return await ctrl.admin_logs(
        stores, admin_id=admin_id, action_type=action_type, page=page, limit=limit
    )


@router.get("/logs/auth", response_model=AuthLogListResponse, summary="[Admin] Auth log")
async def auth_logs(
    action: str | None = Query(default=None),
    success: bool | None = Query(default=None),
    email: str | None = Query(default=None),
    user_type: AccountKind | None = Query(default=None),
    start_date: datetime | None = Query(default=None),
    end_date: datetime | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=200),
    admin: Principal = Depends(require_admin),
    stores: Stores = Depends(get_stores),
) -> AuthLogListResponse:
    return await ctrl.auth_logs(
        stores,
        action=action,
        success=success,
        email=email,
        kind=user_type,
        since=start_date,
        until=end_date,
        page=page,
        limit=limit,
    )


@router.get(
    "/logs/auth/stats",
    response_model=AuthStatsResponse,
    summary="[Admin] Auth success / failure totals",
)
async def auth_stats(
    days: int = Query(default=7, ge=1, le=365),
    admin: Principal = Depends(require_admin),
    stores: Stores = Depends(get_stores),
) -> AuthStatsResponse:
    return await ctrl.auth_stats(stores, days=days)


@router.get(
    "/logs/auth/failed",
    response_model=FailedAttemptsResponse,
    summary="[Admin] Recent failed login / OTP attempts by email",
)
async def failed_attempts(
    minutes: int = Query(default=15, ge=1, le=1440),
    admin: Principal = Depends(require_admin),
    stores: Stores = Depends(get_stores),
) -> FailedAttemptsResponse:
    return await ctrl.failed_attempts(stores, minutes=minutes)


@router.get(
    "/logs/auth/users/{kind}/{user_id}",
    response_model=AuthLogListResponse,
    summary="[Admin] Auth log of one account",
)
async def user_auth_logs(
    kind: AccountKind,
    user_id: uuid.UUID,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=200),
    admin: Principal = Depends(require_admin),
    stores: Stores = Depends(get_stores),
) -> AuthLogListResponse:
    return await ctrl.user_auth_logs(stores, kind, user_id, page=page, limit=limit)


@router.get(
    "/logs/auth/email/{email}",
    response_model=AuthLogListResponse,
    summary="[Admin] Auth log of one email address",
)
async def email_auth_logs(
    email: str,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=200),
    admin: Principal = Depends(require_admin),
    stores: Stores = Depends(get_stores),
) -> AuthLogListResponse:
    return await ctrl.email_auth_logs(stores, email, page=page, limit=limit)


# ── Admin accounts ────────────────────────────────────────────────────────────

@router.post(
    "/admins",
    response_model=AccountResponse,
    status_code=status.HTTP_201_CREATED,
    summary="[Super Admin] Create an admin account",
)
async def create_admin(
    body: AdminCreateRequest,
    admin: Principal = Depends(require_super_admin),
    stores: Stores = Depends(get_stores),
    ctx: RequestContext = Depends(get_request_context),
) -> AccountResponse:
    return await ctrl.create_admin(stores, admin, body, ctx)

"""
Auth router.

Only HTTP concerns live here:
  - Route declarations, HTTP methods, status codes, response_model
  - Dependency injection (service, settings, request context, principal)
  - Forwarding to the controller

Zero business logic. Zero DB queries.
"""
from fastapi import APIRouter, Depends, Request, Response, status

from careauth.auth import controller
from careauth.auth.dependencies import (
    get_auth_service,
    get_current_principal,
    get_request_context,
    get_settings,
)
from careauth.auth.schemas import (
    AdminLoginRequest,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    MeResponse,
    MessageResponse,
    OTPSentResponse,
    ProfileUpdateRequest,
    RegisterRequest,
    RegisterResponse,
    ResendOTPRequest,
    ResetPasswordRequest,
    VerifiedEmailResponse,
    VerifyOTPRequest,
)
from careauth.auth.service import AuthService, Principal
from careauth.auth.utils import RequestContext
from careauth.config import Settings
from careauth.rate_limit import limiter

router = APIRouter(prefix="/auth", tags=["auth"])


# ── Registration / login ──────────────────────────────────────────────────────

@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a doctor or patient account (email verification follows)",
)
@limiter.limit("5/hour")
async def register(
    request: Request,
    body: RegisterRequest,
    service: AuthService = Depends(get_auth_service),
    ctx: RequestContext = Depends(get_request_context),
    settings: Settings = Depends(get_settings),
) -> RegisterResponse:
    return await controller.register(service, body, ctx, settings)


@router.post(
    "/login",
    response_model=OTPSentResponse,
    summary="Check credentials and send a login OTP",
)
@limiter.limit("10/minute")
async def login(
    request: Request,
    body: LoginRequest,
    service: AuthService = Depends(get_auth_service),
    ctx: RequestContext = Depends(get_request_context),
    settings: Settings = Depends(get_settings),
) -> OTPSentResponse:
    return await controller.login(service, body, ctx, settings)


@router.post(
    "/verify-otp",
    response_model=LoginResponse | VerifiedEmailResponse,
    summary="Verify a registration or login OTP",
)
@limiter.limit("10/minute")
async def verify_otp(
    request: Request,
    response: Response,
    body: VerifyOTPRequest,
    service: AuthService = Depends(get_auth_service),
    ctx: RequestContext = Depends(get_request_context),
    settings: Settings = Depends(get_settings),
) -> LoginResponse | VerifiedEmailResponse:
    return await controller.verify_otp(service, body, ctx, settings, response)


@router.post(
    "/resend-otp",
    response_model=OTPSentResponse,
    summary="Send a fresh OTP (60 second cool-down)",
)
@limiter.limit("5/minute")
async def resend_otp(
    request: Request,
    body: ResendOTPRequest,
    service: AuthService = Depends(get_auth_service),
    ctx: RequestContext = Depends(get_request_context),
    settings: Settings = Depends(get_settings),
) -> OTPSentResponse:
    return await controller.resend_otp(service, body, ctx, settings)


@router.post(
    "/admin/login",
    response_model=LoginResponse,
    summary="Administrator login (password only)",
)
@limiter.limit("5/minute")
async def admin_login(
    request: Request,
    response: Response,
    body: AdminLoginRequest,
    service: AuthService = Depends(get_auth_service),
    ctx: RequestContext = Depends(get_request_context),
    settings: Settings = Depends(get_settings),
) -> LoginResponse:
    return await controller.admin_login(service, body, ctx, settings, response)


@router.post(
    "/logout",
    response_model=MessageResponse,
    summary="End the current session and clear the cookie",
)
async def logout(
    response: Response,
    principal: Principal = Depends(get_current_principal),
    service: AuthService = Depends(get_auth_service),
    ctx: RequestContext = Depends(get_request_context),
    settings: Settings = Depends(get_settings),
) -> MessageResponse:
    return await controller.logout(service, principal, ctx, settings, response)


# ── Current account ───────────────────────────────────────────────────────────

@router.get("/me", response_model=MeResponse, summary="Get the authenticated account")
async def get_me(principal: Principal = Depends(get_current_principal)) -> MeResponse:
    return controller.me(principal)


@router.put("/me", response_model=MeResponse, summary="Update the authenticated account's profile")
async def update_me(
    body: ProfileUpdateRequest,
    principal: Principal = Depends(get_current_principal),
    service: AuthService = Depends(get_auth_service),
) -> MeResponse:
    return await controller.update_me(service, principal, body)


@router.delete("/me", response_model=MessageResponse, summary="Delete the authenticated account")
async def delete_me(
    response: Response,
    principal: Principal = Depends(get_current_principal),
    service: AuthService = Depends(get_auth_service),
    ctx: RequestContext = Depends(get_request_context),
    settings: Settings = Depends(get_settings),
) -> MessageResponse:
    return await controller.delete_me(service, principal, ctx, settings, response)


# ── Password flows ────────────────────────────────────────────────────────────

@router.post(
    "/forgot-password",
    response_model=OTPSentResponse,
    summary="Request a password reset OTP (once per account lifetime)",
)
@limiter.limit("5/hour")
async def forgot_password(
    request: Request,
    body: ForgotPasswordRequest,
    service: AuthService = Depends(get_auth_service),
    ctx: RequestContext = Depends(get_request_context),
    settings: Settings = Depends(get_settings),
) -> OTPSentResponse:
    return await controller.forgot_password(service, body, ctx, settings)


@router.post(
    "/reset-password",
    response_model=MessageResponse,
    summary="Set a new password with a reset OTP",
)
@limiter.limit("10/hour")
async def reset_password(
    request: Request,
    body: ResetPasswordRequest,
    service: AuthService = Depends(get_auth_service),
    ctx: RequestContext = Depends(get_request_context),
) -> MessageResponse:
    return await controller.reset_password(service, body, ctx)


@router.put(
    "/change-password",
    response_model=MessageResponse,
    summary="Change the password of the authenticated account",
)
async def change_password(
    body: ChangePasswordRequest,
    principal: Principal = Depends(get_current_principal),
    service: AuthService = Depends(get_auth_service),
    ctx: RequestContext = Depends(get_request_context),
) -> MessageResponse:
    return await controller.change_password(service, principal, body, ctx)

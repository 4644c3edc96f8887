"""
Auth controller (request orchestration layer).

Responsibilities:
  - Receive validated input from the router.
  - Call the AuthService (which owns the state machines).
  - Compose the response model and bind / clear the session cookie.

No framework validation logic here: that belongs in schemas.py.
No business logic here: that belongs in service.py.
"""
from __future__ import annotations

from fastapi import Response

from careauth.auth import tokens
from careauth.auth.constants import Role
from careauth.auth.schemas import (
    AccountProfile,
    AdminLoginRequest,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginInfo,
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
    SessionInfo,
    VerifiedEmailResponse,
    VerifyOTPRequest,
)
from careauth.auth.service import AuthService, EmailVerified, LoginCompleted, Principal
from careauth.auth.utils import RequestContext
from careauth.config import Settings

FORGOT_PASSWORD_MESSAGE = "If an account exists with this email, a password reset OTP has been sent."
SINGLE_DEVICE_MESSAGE = (
    "You have been logged in from this device. "
    "All other sessions have been terminated for security."
)
DEV_NOTE = "OTP is included because the server runs in development mode."


# ── Helpers ───────────────────────────────────────────────────────────────────

def _dev_otp(settings: Settings, code: str | None) -> dict:
    if settings.expose_otp and code:
        return {"otp": code, "dev_note": DEV_NOTE}
    return {}


def _login_response(completed: LoginCompleted, message: str) -> LoginResponse:
    enforcement = completed.issued.enforcement
    return LoginResponse(
        message=message,
        data=AccountProfile.model_validate(completed.account),
        token=completed.issued.token,
        session_info=SessionInfo(
            previous_device_logged_out=enforcement.had_prior_device,
            revoked_sessions=enforcement.revoked_count,
            message=SINGLE_DEVICE_MESSAGE,
        ),
        login_info=LoginInfo(
            previous_login=completed.previous_login,
            last_logout=completed.last_logout,
        ),
    )


# ── Register / login ──────────────────────────────────────────────────────────

async def register(
    service: AuthService,
    body: RegisterRequest,
    ctx: RequestContext,
    settings: Settings,
) -> RegisterResponse:
    result = await service.register(
        role=Role(body.role.value),
        name=body.name,
        email=body.email,
        password=body.password,
        profile=body.profile_fields(),
        ctx=ctx,
    )
    if result.email_sent:
        message = "Registration successful. Please check your email for the verification code."
    else:
        message = (
            "Registration successful, but the verification email could not be sent. "
            "Please request a new code."
        )
    return RegisterResponse(
        message=message,
        email=result.account.email,
        role=Role(body.role.value),
        email_sent=result.email_sent,
        **_dev_otp(settings, result.code),
    )


async def login(
    service: AuthService,
    body: LoginRequest,
    ctx: RequestContext,
    settings: Settings,
) -> OTPSentResponse:
    dispatch = await service.login(
        role=Role(body.role.value), email=body.email, password=body.password, ctx=ctx
    )
    return OTPSentResponse(
        message="OTP sent to your email. Please verify to complete login.",
        email=dispatch.email,
        role=Role(body.role.value),
        **_dev_otp(settings, dispatch.code),
    )


async def verify_otp(
    service: AuthService,
    body: VerifyOTPRequest,
    ctx: RequestContext,
    settings: Settings,
    response: Response,
) -> LoginResponse | VerifiedEmailResponse:
    outcome = await service.verify_otp(
        role=Role(body.role.value),
        email=body.email,
        code=body.otp,
        purpose=body.purpose,
        ctx=ctx,
    )
    if isinstance(outcome, EmailVerified):
        return VerifiedEmailResponse(
            message="Email verified successfully. You can now log in.",
            data=AccountProfile.model_validate(outcome.account),
        )
    tokens.set_session_cookie(response, outcome.issued.token, settings)
    return _login_response(outcome, "Login successful.")


async def resend_otp(
    service: AuthService,
    body: ResendOTPRequest,
    ctx: RequestContext,
    settings: Settings,
) -> OTPSentResponse:
    dispatch = await service.resend_otp(
        role=Role(body.role.value), email=body.email, purpose=body.purpose, ctx=ctx
    )
    return OTPSentResponse(
        message="A new OTP has been sent to your email.",
        email=dispatch.email,
        role=Role(body.role.value),
        **_dev_otp(settings, dispatch.code),
    )


async def admin_login(
    service: AuthService,
    body: AdminLoginRequest,
    ctx: RequestContext,
    settings: Settings,
    response: Response,
) -> LoginResponse:
    completed = await service.admin_login(email=body.email, password=body.password, ctx=ctx)
    tokens.set_session_cookie(response, completed.issued.token, settings)
    return _login_response(completed, "Admin login successful.")


async def logout(
    service: AuthService,
    principal: Principal,
    ctx: RequestContext,
    settings: Settings,
    response: Response,
) -> MessageResponse:
    await service.logout(principal, ctx)
    tokens.clear_session_cookie(response, settings)
    return MessageResponse(message="Logged out successfully.")


# ── Current account ───────────────────────────────────────────────────────────

def me(principal: Principal) -> MeResponse:
    return MeResponse(data=AccountProfile.model_validate(principal.account))


async def update_me(
    service: AuthService, principal: Principal, body: ProfileUpdateRequest
) -> MeResponse:
    account = await service.update_profile(principal, body.changes())
    return MeResponse(data=AccountProfile.model_validate(account))


async def delete_me(
    service: AuthService,
    principal: Principal,
    ctx: RequestContext,
    settings: Settings,
    response: Response,
) -> MessageResponse:
    await service.delete_account(principal, ctx)
    tokens.clear_session_cookie(response, settings)
    return MessageResponse(message="Account deleted successfully.")


# ── Password flows ────────────────────────────────────────────────────────────

async def forgot_password(
    service: AuthService,
    body: ForgotPasswordRequest,
    ctx: RequestContext,
    settings: Settings,
) -> OTPSentResponse:
    dispatch = await service.forgot_password(role=Role(body.role.value), email=body.email, ctx=ctx)
    return OTPSentResponse(
        message=FORGOT_PASSWORD_MESSAGE,
        email=body.email,
        role=Role(body.role.value),
        **_dev_otp(settings, dispatch.code if dispatch else None),
    )


async def reset_password(
    service: AuthService,
    body: ResetPasswordRequest,
    ctx: RequestContext,
) -> MessageResponse:
    await service.reset_password(
        role=Role(body.role.value),
        email=body.email,
        code=body.otp,
        password=body.password,
        confirm_password=body.confirm_password,
        ctx=ctx,
    )
    return MessageResponse(
        message=(
            "Password reset successful. You can now log in with your new password. "
            "Note: password reset can only be used once per account."
        )
    )


async def change_password(
    service: AuthService,
    principal: Principal,
    body: ChangePasswordRequest,
    ctx: RequestContext,
) -> MessageResponse:
    await service.change_password(
        principal,
        current_password=body.current_password,
        new_password=body.new_password,
        confirm_password=body.confirm_password,
        ctx=ctx,
    )
    return MessageResponse(message="Password changed successfully.")



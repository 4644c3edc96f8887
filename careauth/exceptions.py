"""
Domain-specific HTTP exceptions.

All exceptions use preset status codes, machine codes and detail messages so
that callers never need to specify these at the call site.  The handlers in
careauth.middleware.errors wrap them in the standard error envelope and merge
``extra`` into the response body.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import HTTPException, status


class AuthError(HTTPException):
    code: str = "error"

    def __init__(
        self,
        status_code: int,
        detail: str,
        *,
        extra: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.extra: dict[str, Any] = extra or {}


# ── Input ─────────────────────────────────────────────────────────────────────

class ValidationFailed(AuthError):
    code = "validation_failed"

    def __init__(self, detail: str = "Validation failed.", *, errors: list | None = None) -> None:
        super().__init__(
            status.HTTP_400_BAD_REQUEST,
            detail,
            extra={"errors": errors} if errors else None,
        )


# ── Registration / conflict ───────────────────────────────────────────────────

class DuplicateEmail(AuthError):
    code = "duplicate_email"

    def __init__(self) -> None:
        super().__init__(
            status.HTTP_400_BAD_REQUEST,
            "An account with this email already exists.",
        )


# ── Authentication ────────────────────────────────────────────────────────────

class InvalidCredentials(AuthError):
    code = "invalid_credentials"

    def __init__(self, detail: str = "Invalid credentials.") -> None:
        super().__init__(status.HTTP_400_BAD_REQUEST, detail)


class EmailNotVerified(AuthError):
    code = "email_not_verified"

    def __init__(self, email: str) -> None:
        super().__init__(
            status.HTTP_400_BAD_REQUEST,
            "Please verify your email before logging in. "
            "Request a new code via /auth/resend-otp with purpose 'registration'.",
            extra={"requires_verification": True, "email": email},
        )


class AccountSuspended(AuthError):
    code = "account_suspended"

    def __init__(
        self,
        *,
        reason: str,
        suspended_at: datetime | None,
        admin_contact: dict[str, str],
    ) -> None:
        super().__init__(
            status.HTTP_403_FORBIDDEN,
            "Your account has been suspended. Please contact the administrator.",
            extra={
                "suspended": True,
                "suspension_reason": reason,
                "suspended_at": suspended_at.isoformat() if suspended_at else None,
                "admin_contact": admin_contact,
            },
        )


class RateLimited(AuthError):
    code = "rate_limited"

    def __init__(self, wait_seconds: int) -> None:
        super().__init__(
            status.HTTP_429_TOO_MANY_REQUESTS,
            f"Please wait {wait_seconds} seconds before requesting a new OTP.",
            extra={"wait_seconds": wait_seconds},
            headers={"Retry-After": str(wait_seconds)},
        )


class TokenInvalid(AuthError):
    code = "token_invalid"

    def __init__(self) -> None:
        super().__init__(status.HTTP_401_UNAUTHORIZED, "Token is invalid.")


class TokenExpired(AuthError):
    code = "token_expired"

    def __init__(self) -> None:
        super().__init__(status.HTTP_401_UNAUTHORIZED, "Token has expired.")


class SessionExpired(AuthError):
    """The token is well-formed but no active session backs it."""

    code = "session_expired"

    def __init__(self) -> None:
        super().__init__(
            status.HTTP_401_UNAUTHORIZED,
            "Session expired or invalid. Please login again.",
        )


class NotAuthenticated(AuthError):
    code = "not_authenticated"

    def __init__(self) -> None:
        super().__init__(
            status.HTTP_401_UNAUTHORIZED,
            "Not authenticated.",
            headers={"WWW-Authenticate": "Bearer"},
        )


class Forbidden(AuthError):
    code = "forbidden"

    def __init__(self, detail: str = "You do not have access to this resource.") -> None:
        super().__init__(status.HTTP_403_FORBIDDEN, detail)


# ── OTP ───────────────────────────────────────────────────────────────────────

class OtpNotFound(AuthError):
    code = "otp_not_found"

    def __init__(self, detail: str = "Invalid or expired OTP. Please request a new one.") -> None:
        super().__init__(status.HTTP_400_BAD_REQUEST, detail)


class OtpInvalid(AuthError):
    code = "otp_invalid"

    def __init__(self, detail: str, attempts_remaining: int) -> None:
        super().__init__(
            status.HTTP_400_BAD_REQUEST,
            detail,
            extra={"attempts_remaining": attempts_remaining},
        )


class OtpExpired(AuthError):
    code = "otp_expired"

    def __init__(self, detail: str = "OTP has expired. Please request a new one.") -> None:
        super().__init__(status.HTTP_400_BAD_REQUEST, detail)


class OtpExhausted(AuthError):
    """All verify attempts used up; the user must request a new OTP."""

    code = "otp_exhausted"

    def __init__(
        self,
        detail: str = "Maximum verification attempts exceeded. Please request a new OTP.",
    ) -> None:
        super().__init__(
            status.HTTP_400_BAD_REQUEST,
            detail,
            extra={"attempts_remaining": 0},
        )


class OtpDeliveryFailed(AuthError):
    code = "otp_delivery_failed"

    def __init__(self) -> None:
        super().__init__(
            status.HTTP_502_BAD_GATEWAY,
            "Failed to send OTP email. Please try again.",
        )


# ── Password reset ────────────────────────────────────────────────────────────

class ResetLimitReached(AuthError):
    code = "reset_limit_reached"

    def __init__(self, *, reset_count: int, last_reset_date: datetime | None) -> None:
        super().__init__(
            status.HTTP_403_FORBIDDEN,
            "Your 1 attempt for password reset has been completed. You cannot reset "
            "your password again. Please contact support if you need assistance.",
            extra={
                "reset_limit_reached": True,
                "reset_count": reset_count,
                "last_reset_date": last_reset_date.isoformat() if last_reset_date else None,
            },
        )


# ── Lookup ────────────────────────────────────────────────────────────────────

class AccountNotFound(AuthError):
    code = "not_found"

    def __init__(self) -> None:
        super().__init__(status.HTTP_404_NOT_FOUND, "User not found.")


class SessionNotFound(AuthError):
    code = "not_found"

    def __init__(self) -> None:
        super().__init__(status.HTTP_404_NOT_FOUND, "Session not found.")


class CannotRevokeCurrentSession(AuthError):
    code = "validation_failed"

    def __init__(self) -> None:
        super().__init__(
            status.HTTP_400_BAD_REQUEST,
            "Cannot revoke the current session. Use logout instead.",
        )

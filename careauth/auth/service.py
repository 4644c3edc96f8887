"""
Auth orchestrator: register / login / reset state machines.

Rules:
  - Zero FastAPI request handling; HTTP concerns stay in router/controller.
  - Collaborators are injected (stores, notifier, lock provider), never imported
    as singletons.
  - Every step that changes trust state writes exactly one audit entry.
  - Business failures raise the typed errors from careauth.exceptions.

Flows:
  register        UNREGISTERED -> PENDING_VERIFICATION -> VERIFIED
  login           CREDENTIALS_SUBMITTED -> OTP_PENDING -> SESSION_ACTIVE
  password reset  REQUESTED -> OTP_PENDING -> RESET_APPLIED (once per lifetime)
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from careauth.auth import audit, credentials, otp, sessions, tokens
from careauth.auth.constants import (
    REVOKED_ACCOUNT_DELETED,
    REVOKED_LOGOUT,
    AuthAction,
    OTPPurpose,
    Role,
    UserType,
    user_type_for,
)
from careauth.auth.locks import KeyedLock
from careauth.auth.models import Account, Admin, AuthSession
from careauth.auth.otp import IssuedOtp, OtpPolicy
from careauth.auth.tokens import IssuedToken
from careauth.auth.utils import RequestContext, normalize_email
from careauth.config import Settings
from careauth.email.notifier import Notifier
from careauth.exceptions import (
    AccountNotFound,
    AccountSuspended,
    AuthError,
    CannotRevokeCurrentSession,
    EmailNotVerified,
    Forbidden,
    InvalidCredentials,
    OtpDeliveryFailed,
    OtpNotFound,
    RateLimited,
    ResetLimitReached,
    SessionExpired,
    TokenInvalid,
    ValidationFailed,
)
from careauth.storage.base import Stores

logger = logging.getLogger(__name__)


# ── Results ───────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Principal:
    """The authenticated caller: account, role from the token, and its session."""

    account: Account
    role: Role
    token: str
    session: AuthSession

    @property
    def user_type(self) -> UserType:
        return self.account.user_type


@dataclass(frozen=True)
class Registration:
    account: Account
    email_sent: bool
    code: str


@dataclass(frozen=True)
class OtpDispatch:
    email: str
    code: str | None


@dataclass(frozen=True)
class LoginCompleted:
    account: Account
    role: Role
    issued: IssuedToken
    previous_login: datetime | None
    last_logout: datetime | None


@dataclass(frozen=True)
class EmailVerified:
    account: Account


class AuthService:
    def __init__(
        self,
        stores: Stores,
        settings: Settings,
        notifier: Notifier,
        locks: KeyedLock,
    ) -> None:
        self.stores = stores
        self.settings = settings
        self.notifier = notifier
        self.locks = locks
        self.otp_policy = OtpPolicy.from_settings(settings)

    # ── Helpers ───────────────────────────────────────────────────────────────

    async def _suspended(self, account: Account) -> AccountSuspended:
        contact = await credentials.admin_contact(
            self.stores.accounts,
            account,
            fallback_name=self.settings.support_name,
            fallback_email=self.settings.support_email,
        )
        return AccountSuspended(
            reason=credentials.suspension_reason(account),
            suspended_at=account.suspended_at,
            admin_contact=contact,
        )

    async def _send_code(self, account: Account, purpose: OTPPurpose, role: Role) -> IssuedOtp:
        """Issue a code and hand it to the notifier; undeliverable codes are dropped."""
        issued = await otp.issue(self.stores.otps, account.email, role, purpose, self.otp_policy)
        if not await self.notifier.send_otp(account.email, account.name, issued.code, purpose):
            await otp.discard(self.stores.otps, issued)
            logger.error("OTP delivery failed for %s (%s)", account.email, purpose.value)
            raise OtpDeliveryFailed()
        return issued

    async def _check_cooldown(self, email: str, purpose: OTPPurpose) -> None:
        decision = await otp.check_rate_limit(self.stores.otps, email, purpose, self.otp_policy)
        if not decision.allowed:
            raise RateLimited(decision.wait_seconds)

    async def _assert_login_pending(self, account: Account) -> None:
        """A login code may only be re-sent after a password-checked login."""
        if not account.is_email_verified:
            raise EmailNotVerified(account.email)
        if not account.is_active:
            raise await self._suspended(account)
        pending = await self.stores.otps.latest(
            account.email, OTPPurpose.LOGIN, unverified_only=True
        )
        if pending is None:
            raise OtpNotFound("No login in progress. Please log in with your password first.")

    def _assert_reset_allowed(self, account: Account) -> None:
        if account.password_reset_count >= self.settings.password_reset_lifetime_limit:
            raise ResetLimitReached(
                reset_count=account.password_reset_count,
                last_reset_date=account.password_reset_used_at,
            )

    # ── Registration ──────────────────────────────────────────────────────────

    async def register(
        self,
        *,
        role: Role,
        name: str,
        email: str,
        password: str,
        profile: dict[str, Any] | None,
        ctx: RequestContext,
    ) -> Registration:
        """
        Create an unverified account and mail it a registration code.

        A failed delivery does not undo the account: the caller is told
        ``email_sent=False`` and can use resend-otp.
        """
        email = normalize_email(email)
        try:
            account = await credentials.create_account(
                self.stores.accounts,
                role,
                name=name,
                email=email,
                password=password,
                profile=profile,
            )
        except AuthError as exc:
            await audit.record(
                self.stores.audit,
                AuthAction.REGISTER,
                email=email,
                success=False,
                ctx=ctx,
                user_type=user_type_for(role),
                failure_reason=str(exc.detail),
            )
            raise

        issued = await otp.issue(
            self.stores.otps, email, role, OTPPurpose.REGISTRATION, self.otp_policy
        )
        email_sent = await self.notifier.send_otp(
            email, account.name, issued.code, OTPPurpose.REGISTRATION
        )
        if not email_sent:
            logger.warning("Registration OTP for %s could not be delivered", email)

        await audit.record(
            self.stores.audit,
            AuthAction.REGISTER,
            email=email,
            success=True,
            ctx=ctx,
            account=account,
            details={"role": role.value, "email_sent": email_sent},
        )
        return Registration(account=account, email_sent=email_sent, code=issued.code)

    # ── Login (step 1: credentials) ───────────────────────────────────────────

    async def login(
        self, *, role: Role, email: str, password: str, ctx: RequestContext
    ) -> OtpDispatch:
        email = normalize_email(email)
        account = await credentials.find_by_email(self.stores.accounts, role, email)

        async def fail(reason: str) -> None:
            await audit.record(
                self.stores.audit,
                AuthAction.FAILED_LOGIN,
                email=email,
                success=False,
                ctx=ctx,
                account=account,
                user_type=user_type_for(role),
                failure_reason=reason,
                details={"role": role.value},
            )

        if account is None:
            await fail("User not found")
            raise InvalidCredentials()
        if not account.is_email_verified:
            await fail("Email not verified")
            raise EmailNotVerified(account.email)
        if not account.is_active:
            await fail("Account suspended")
            raise await self._suspended(account)
        if not credentials.verify_password(account, password):
            await fail("Invalid password")
            raise InvalidCredentials()

        await self._check_cooldown(email, OTPPurpose.LOGIN)
        issued = await self._send_code(account, OTPPurpose.LOGIN, role)

        await audit.record(
            self.stores.audit,
            AuthAction.LOGIN,
            email=email,
            success=True,
            ctx=ctx,
            account=account,
            details={"role": role.value, "stage": "otp_sent"},
        )
        return OtpDispatch(email=account.email, code=issued.code)

    # ── OTP verification (registration / login step 2) ───────────────────────

    async def verify_otp(
        self,
        *,
        role: Role,
        email: str,
        code: str,
        purpose: OTPPurpose,
        ctx: RequestContext,
    ) -> EmailVerified | LoginCompleted:
        if purpose is OTPPurpose.PASSWORD_RESET:
            raise ValidationFailed("Password reset codes are submitted to /auth/reset-password.")
        email = normalize_email(email)

        check = await otp.verify(self.stores.otps, email, code, purpose, self.otp_policy)
        if not check.success:
            await audit.record(
                self.stores.audit,
                AuthAction.FAILED_OTP,
                email=email,
                success=False,
                ctx=ctx,
                user_type=user_type_for(role),
                failure_reason=check.message,
                details={
                    "purpose": purpose.value,
                    "role": role.value,
                    "attempts_remaining": check.attempts_remaining,
                },
            )
            check.raise_for_failure()

        account = await credentials.find_by_email(self.stores.accounts, role, email)
        if account is None:
            await otp.consume(self.stores.otps, check)
            raise AccountNotFound()

        if purpose is OTPPurpose.REGISTRATION:
            await credentials.mark_email_verified(self.stores.accounts, account)
            await otp.consume(self.stores.otps, check)
            if not await self.notifier.send_welcome(account.email, account.name):
                logger.warning("Welcome email to %s was not delivered", account.email)
            await audit.record(
                self.stores.audit,
                AuthAction.OTP_VERIFICATION,
                email=email,
                success=True,
                ctx=ctx,
                account=account,
                details={"purpose": purpose.value, "email_verified": True},
            )
            return EmailVerified(account=account)

        if not account.is_email_verified:
            await otp.consume(self.stores.otps, check)
            raise EmailNotVerified(account.email)
        # Suspension may have landed between the two login steps.
        if not account.is_active:
            await otp.consume(self.stores.otps, check)
            raise await self._suspended(account)

        completed = await self._open_session(account, role, ctx)
        await otp.consume(self.stores.otps, check)
        await audit.record(
            self.stores.audit,
            AuthAction.OTP_VERIFICATION,
            email=email,
            success=True,
            ctx=ctx,
            account=account,
            details={
                "purpose": purpose.value,
                "login_completed": True,
                "single_device_enforced": True,
                "revoked_sessions": completed.issued.enforcement.revoked_count,
                "device_info": ctx.device_info,
            },
        )
        return completed

    async def _open_session(self, account: Account, role: Role, ctx: RequestContext) -> LoginCompleted:
        previous_login = account.last_login
        await credentials.record_login(self.stores.accounts, account)
        issued = await tokens.issue(
            self.stores.sessions,
            self.locks,
            user_id=account.id,
            role=role,
            ctx=ctx,
            settings=self.settings,
        )
        return LoginCompleted(
            account=account,
            role=role,
            issued=issued,
            previous_login=previous_login,
            last_logout=account.last_logout,
        )

    # ── Resend ────────────────────────────────────────────────────────────────

    async def resend_otp(
        self, *, role: Role, email: str, purpose: OTPPurpose, ctx: RequestContext
    ) -> OtpDispatch:
        email = normalize_email(email)
        account = await credentials.find_by_email(self.stores.accounts, role, email)
        if account is None:
            raise AccountNotFound()
        if purpose is OTPPurpose.REGISTRATION and account.is_email_verified:
            raise ValidationFailed("This email address is already verified.")
        if purpose is OTPPurpose.PASSWORD_RESET:
            self._assert_reset_allowed(account)
        if purpose is OTPPurpose.LOGIN:
            await self._assert_login_pending(account)

        await self._check_cooldown(email, purpose)
        issued = await self._send_code(account, purpose, role)
        await audit.record(
            self.stores.audit,
            AuthAction.OTP_RESEND,
            email=email,
            success=True,
            ctx=ctx,
            account=account,
            details={"purpose": purpose.value},
        )
        return OtpDispatch(email=account.email, code=issued.code)

    # ── Admin login (no OTP step) ─────────────────────────────────────────────

    async def admin_login(self, *, email: str, password: str, ctx: RequestContext) -> LoginCompleted:
        email = normalize_email(email)
        admin = await self.stores.accounts.find_by_email(UserType.ADMIN, email)

        async def fail(reason: str) -> None:
            await audit.record(
                self.stores.audit,
                AuthAction.FAILED_ADMIN_LOGIN,
                email=email,
                success=False,
                ctx=ctx,
                account=admin,
                user_type=UserType.ADMIN,
                failure_reason=reason,
            )

        if admin is None:
            await fail("Admin not found")
            raise InvalidCredentials()
        if not admin.is_active:
            await fail("Account suspended")
            raise await self._suspended(admin)
        if not credentials.verify_password(admin, password):
            await fail("Invalid password")
            raise InvalidCredentials()

        completed = await self._open_session(admin, Role(admin.role), ctx)
        await audit.record(
            self.stores.audit,
            AuthAction.ADMIN_LOGIN,
            email=email,
            success=True,
            ctx=ctx,
            account=admin,
            details={
                "role": Role(admin.role).value,
                "revoked_sessions": completed.issued.enforcement.revoked_count,
            },
        )
        return completed

    # ── Authenticated caller ──────────────────────────────────────────────────

    async def authenticate(self, token: str) -> Principal:
        claims = tokens.decode(token, self.settings)
        account = await credentials.find_by_id(
            self.stores.accounts, user_type_for(claims.role), claims.subject_id
        )
        if account is None:
            raise TokenInvalid()
        if isinstance(account, Admin) and Role(account.role) is not claims.role:
            raise TokenInvalid()

        session = await sessions.find_by_token(self.stores.sessions, token)
        if session is None:
            raise SessionExpired()
        if not account.is_active:
            raise await self._suspended(account)

        await sessions.touch(self.stores.sessions, token)
        return Principal(account=account, role=claims.role, token=token, session=session)

    async def logout(self, principal: Principal, ctx: RequestContext) -> None:
        await credentials.record_logout(self.stores.accounts, principal.account)
        await sessions.revoke_token(self.stores.sessions, principal.token, REVOKED_LOGOUT)
        await audit.record(
            self.stores.audit,
            AuthAction.LOGOUT,
            email=principal.account.email,
            success=True,
            ctx=ctx,
            account=principal.account,
        )

    async def update_profile(self, principal: Principal, changes: dict[str, Any]) -> Account:
        return await credentials.update_profile(self.stores.accounts, principal.account, changes)

    async def delete_account(self, principal: Principal, ctx: RequestContext) -> None:
        account = principal.account
        if isinstance(account, Admin):
            raise Forbidden("Admin accounts cannot be deleted from here.")
        await sessions.revoke_all(
            self.stores.sessions, account.id, account.user_type, REVOKED_ACCOUNT_DELETED
        )
        await self.stores.accounts.delete(account)
        await audit.record(
            self.stores.audit,
            AuthAction.ACCOUNT_DELETED,
            email=account.email,
            success=True,
            ctx=ctx,
            account=account,
        )

    # ── Password reset (lifetime-limited) ─────────────────────────────────────

    async def forgot_password(self, *, role: Role, email: str, ctx: RequestContext) -> OtpDispatch | None:
        """
        Mail a reset code.

        Returns None for unknown emails; the controller answers both cases
        with the same message.
        """
        email = normalize_email(email)
        account = await credentials.find_by_email(self.stores.accounts, role, email)
        if account is None:
            await audit.record(
                self.stores.audit,
                AuthAction.PASSWORD_RESET_REQUEST,
                email=email,
                success=False,
                ctx=ctx,
                user_type=user_type_for(role),
                failure_reason="User not found",
                details={"role": role.value},
            )
            return None

        try:
            self._assert_reset_allowed(account)
        except ResetLimitReached:
            await audit.record(
                self.stores.audit,
                AuthAction.PASSWORD_RESET_REQUEST,
                email=email,
                success=False,
                ctx=ctx,
                account=account,
                failure_reason=(
                    "Password reset limit exceeded "
                    f"(lifetime limit: {self.settings.password_reset_lifetime_limit})"
                ),
                details={
                    "reset_count": account.password_reset_count,
                    "last_reset_at": account.password_reset_used_at,
                },
            )
            raise

        issued = await self._send_code(account, OTPPurpose.PASSWORD_RESET, role)
        await audit.record(
            self.stores.audit,
            AuthAction.PASSWORD_RESET_REQUEST,
            email=email,
            success=True,
            ctx=ctx,
            account=account,
            details={"role": role.value},
        )
        return OtpDispatch(email=account.email, code=issued.code)

    async def reset_password(
        self,
        *,
        role: Role,
        email: str,
        code: str,
        password: str,
        confirm_password: str,
        ctx: RequestContext,
    ) -> None:
        if password != confirm_password:
            raise ValidationFailed("Passwords do not match.")
        credentials.assert_strong_password(password)
        email = normalize_email(email)

        account = await credentials.find_by_email(self.stores.accounts, role, email)
        if account is not None:
            self._assert_reset_allowed(account)

        check = await otp.verify(
            self.stores.otps, email, code, OTPPurpose.PASSWORD_RESET, self.otp_policy
        )
        if not check.success:
            await audit.record(
                self.stores.audit,
                AuthAction.PASSWORD_RESET_FAILED,
                email=email,
                success=False,
                ctx=ctx,
                account=account,
                user_type=user_type_for(role),
                failure_reason=check.message,
                details={"attempts_remaining": check.attempts_remaining},
            )
            check.raise_for_failure()

        if account is None:
            await otp.consume(self.stores.otps, check)
            raise ValidationFailed("User not found.")

        # The code is already marked verified: a failure below cannot make it reusable.
        await credentials.apply_password_reset(self.stores.accounts, account, password)
        await otp.consume(self.stores.otps, check)

        if not await self.notifier.send_password_changed(account.email, account.name):
            logger.warning("Password-changed email to %s was not delivered", account.email)
        await audit.record(
            self.stores.audit,
            AuthAction.PASSWORD_RESET_SUCCESS,
            email=email,
            success=True,
            ctx=ctx,
            account=account,
            details={"role": role.value, "reset_count": account.password_reset_count},
        )

    async def change_password(
        self,
        principal: Principal,
        *,
        current_password: str,
        new_password: str,
        confirm_password: str,
        ctx: RequestContext,
    ) -> None:
        account = principal.account
        if new_password != confirm_password:
            raise ValidationFailed("Passwords do not match.")
        if not credentials.verify_password(account, current_password):
            await audit.record(
                self.stores.audit,
                AuthAction.PASSWORD_CHANGE,
                email=account.email,
                success=False,
                ctx=ctx,
                account=account,
                failure_reason="Current password incorrect",
            )
            raise InvalidCredentials("Current password is incorrect.")
        if credentials.verify_password(account, new_password):
            raise ValidationFailed("New password must be different from current password.")

        await credentials.set_password(self.stores.accounts, account, new_password)
        if not await self.notifier.send_password_changed(account.email, account.name):
            logger.warning("Password-changed email to %s was not delivered", account.email)
        await audit.record(
            self.stores.audit,
            AuthAction.PASSWORD_CHANGE,
            email=account.email,
            success=True,
            ctx=ctx,
            account=account,
        )

    # ── Device sessions ───────────────────────────────────────────────────────

    async def list_sessions(self, principal: Principal) -> list[AuthSession]:
        return await sessions.list_active(
            self.stores.sessions, principal.account.id, principal.user_type
        )

    async def revoke_session(self, principal: Principal, session_id: uuid.UUID) -> AuthSession:
        if session_id == principal.session.id:
            raise CannotRevokeCurrentSession()
        return await sessions.revoke(
            self.stores.sessions,
            session_id,
            user_id=principal.account.id,
            user_type=principal.user_type,
        )

    async def revoke_other_sessions(self, principal: Principal) -> int:
        return await sessions.revoke_all_except(
            self.stores.sessions, principal.account.id, principal.user_type, principal.token
        )

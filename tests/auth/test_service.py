import uuid

import pytest

from careauth.auth import credentials
from careauth.auth.constants import AuthAction, OTPPurpose, Role, UserType
from careauth.auth.locks import LocalKeyedLock
from careauth.auth.service import AuthService, EmailVerified, LoginCompleted
from careauth.exceptions import (
    AccountNotFound,
    AccountSuspended,
    CannotRevokeCurrentSession,
    DuplicateEmail,
    EmailNotVerified,
    Forbidden,
    InvalidCredentials,
    OtpDeliveryFailed,
    OtpInvalid,
    OtpNotFound,
    RateLimited,
    ResetLimitReached,
    SessionExpired,
    TokenInvalid,
    ValidationFailed,
)
from tests.conftest import STRONG_PASSWORD, make_settings

NEW_PASSWORD = "N3w!Passw0rd"
WRONG_CODE = "000000"


def _actions(stores) -> list[str]:
    return [entry.action for entry in stores.audit.auth_logs]


async def _login(service, notifier, ctx, email="alice@example.com", role=Role.PATIENT, password=STRONG_PASSWORD):
    await service.login(role=role, email=email, password=password, ctx=ctx)
    completed = await service.verify_otp(
        role=role,
        email=email,
        code=notifier.last_code(email, OTPPurpose.LOGIN),
        purpose=OTPPurpose.LOGIN,
        ctx=ctx,
    )
    assert isinstance(completed, LoginCompleted)
    return completed


@pytest.fixture
def no_cooldown_service(stores, notifier) -> AuthService:
    return AuthService(
        stores,
        make_settings(otp_resend_cooldown_seconds=0),
        notifier=notifier,
        locks=LocalKeyedLock(),
    )


# ── Registration ──────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_register_sends_code_and_leaves_account_unverified(service, stores, notifier, ctx) -> None:
    result = await service.register(
        role=Role.DOCTOR,
        name="Dr Bob",
        email="Bob@Example.com",
        password=STRONG_PASSWORD,
        profile={"specialization": "Cardiology"},
        ctx=ctx,
    )
    assert result.email_sent
    assert result.account.email == "bob@example.com"
    assert not result.account.is_email_verified
    assert notifier.last_code("bob@example.com", OTPPurpose.REGISTRATION) == result.code
    assert _actions(stores) == [AuthAction.REGISTER.value]


@pytest.mark.asyncio
async def test_register_duplicate_email_is_audited(service, stores, ctx, verified_account) -> None:
    await verified_account()
    with pytest.raises(DuplicateEmail):
        await service.register(
            role=Role.DOCTOR,
            name="Alice Again",
            email="alice@example.com",
            password=STRONG_PASSWORD,
            profile=None,
            ctx=ctx,
        )
    failed = stores.audit.auth_logs[-1]
    assert failed.action == AuthAction.REGISTER.value
    assert not failed.success


@pytest.mark.asyncio
async def test_register_survives_failed_delivery(service, stores, notifier, ctx) -> None:
    notifier.deliver = False
    result = await service.register(
        role=Role.PATIENT, name="Carol", email="carol@example.com", password=STRONG_PASSWORD, profile=None, ctx=ctx
    )
    assert not result.email_sent
    assert await credentials.find_by_email(stores.accounts, Role.PATIENT, "carol@example.com") is not None


@pytest.mark.asyncio
async def test_verify_registration_marks_email_verified(service, notifier, ctx) -> None:
    await service.register(
        role=Role.PATIENT, name="Alice", email="alice@example.com", password=STRONG_PASSWORD, profile=None, ctx=ctx
    )
    outcome = await service.verify_otp(
        role=Role.PATIENT,
        email="alice@example.com",
        code=notifier.last_code("alice@example.com", OTPPurpose.REGISTRATION),
        purpose=OTPPurpose.REGISTRATION,
        ctx=ctx,
    )
    assert isinstance(outcome, EmailVerified)
    assert outcome.account.is_email_verified
    assert notifier.welcomed == ["alice@example.com"]


@pytest.mark.asyncio
async def test_resend_registration_for_verified_email_is_rejected(service, ctx, verified_account) -> None:
    await verified_account()
    with pytest.raises(ValidationFailed):
        await service.resend_otp(
            role=Role.PATIENT, email="alice@example.com", purpose=OTPPurpose.REGISTRATION, ctx=ctx
        )


# ── Login ─────────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_login_requires_verified_email(service, ctx) -> None:
    await service.register(
        role=Role.PATIENT, name="Alice", email="alice@example.com", password=STRONG_PASSWORD, profile=None, ctx=ctx
    )
    with pytest.raises(EmailNotVerified) as excinfo:
        await service.login(role=Role.PATIENT, email="alice@example.com", password=STRONG_PASSWORD, ctx=ctx)
    assert excinfo.value.extra["requires_verification"] is True


@pytest.mark.asyncio
async def test_login_with_wrong_password_or_role(service, stores, ctx, verified_account) -> None:
    await verified_account()
    with pytest.raises(InvalidCredentials):
        await service.login(role=Role.PATIENT, email="alice@example.com", password="Wr0ng!pass", ctx=ctx)
    with pytest.raises(InvalidCredentials):
        await service.login(role=Role.DOCTOR, email="alice@example.com", password=STRONG_PASSWORD, ctx=ctx)
    assert _actions(stores)[-2:] == [AuthAction.FAILED_LOGIN.value] * 2
    assert stores.audit.auth_logs[-1].failure_reason == "User not found"


@pytest.mark.asyncio
async def test_full_login_sets_session_and_last_login(service, stores, notifier, ctx, verified_account) -> None:
    account = await verified_account()
    assert account.last_login is None

    completed = await _login(service, notifier, ctx)

    assert completed.previous_login is None
    assert account.last_login is not None
    assert completed.issued.enforcement.revoked_count == 0
    assert completed.issued.session.device_info == {"browser": "Chrome", "os": "Windows", "device": "Desktop"}

    principal = await service.authenticate(completed.issued.token)
    assert principal.account.id == account.id
    assert principal.role is Role.PATIENT
    assert principal.session.id == completed.issued.session.id
    assert AuthAction.OTP_VERIFICATION.value in _actions(stores)


@pytest.mark.asyncio
async def test_second_login_logs_out_first_device(no_cooldown_service, notifier, ctx, verified_account) -> None:
    await verified_account()
    first = await _login(no_cooldown_service, notifier, ctx)
    second = await _login(no_cooldown_service, notifier, ctx)

    assert second.issued.enforcement.revoked_count == 1
    assert second.issued.enforcement.had_prior_device
    assert second.previous_login is not None
    with pytest.raises(SessionExpired):
        await no_cooldown_service.authenticate(first.issued.token)
    await no_cooldown_service.authenticate(second.issued.token)


@pytest.mark.asyncio
async def test_login_resend_within_cooldown_is_rate_limited(service, ctx, verified_account) -> None:
    await verified_account()
    await service.login(role=Role.PATIENT, email="alice@example.com", password=STRONG_PASSWORD, ctx=ctx)
    with pytest.raises(RateLimited) as excinfo:
        await service.resend_otp(role=Role.PATIENT, email="alice@example.com", purpose=OTPPurpose.LOGIN, ctx=ctx)
    assert 0 < excinfo.value.extra["wait_seconds"] <= 60
    assert excinfo.value.headers["Retry-After"] == str(excinfo.value.extra["wait_seconds"])


@pytest.mark.asyncio
async def test_login_resend_requires_verified_email(no_cooldown_service, notifier, ctx) -> None:
    await no_cooldown_service.register(
        role=Role.PATIENT, name="Alice", email="alice@example.com", password=STRONG_PASSWORD, profile=None, ctx=ctx
    )
    with pytest.raises(EmailNotVerified):
        await no_cooldown_service.resend_otp(
            role=Role.PATIENT, email="alice@example.com", purpose=OTPPurpose.LOGIN, ctx=ctx
        )
    assert [purpose for _, _, purpose in notifier.otps] == [OTPPurpose.REGISTRATION]


@pytest.mark.asyncio
async def test_login_resend_requires_password_step(no_cooldown_service, notifier, ctx, verified_account) -> None:
    await verified_account()
    with pytest.raises(OtpNotFound):
        await no_cooldown_service.resend_otp(
            role=Role.PATIENT, email="alice@example.com", purpose=OTPPurpose.LOGIN, ctx=ctx
        )

    await no_cooldown_service.login(
        role=Role.PATIENT, email="alice@example.com", password=STRONG_PASSWORD, ctx=ctx
    )
    first = notifier.last_code("alice@example.com", OTPPurpose.LOGIN)
    dispatch = await no_cooldown_service.resend_otp(
        role=Role.PATIENT, email="alice@example.com", purpose=OTPPurpose.LOGIN, ctx=ctx
    )
    assert dispatch.code == notifier.last_code("alice@example.com", OTPPurpose.LOGIN)
    if dispatch.code != first:
        with pytest.raises(OtpInvalid):
            await no_cooldown_service.verify_otp(
                role=Role.PATIENT, email="alice@example.com", code=first, purpose=OTPPurpose.LOGIN, ctx=ctx
            )
    completed = await no_cooldown_service.verify_otp(
        role=Role.PATIENT, email="alice@example.com", code=dispatch.code, purpose=OTPPurpose.LOGIN, ctx=ctx
    )
    assert isinstance(completed, LoginCompleted)


@pytest.mark.asyncio
async def test_login_code_is_refused_for_unverified_email(service, stores, notifier, ctx, verified_account) -> None:
    account = await verified_account()
    await service.login(role=Role.PATIENT, email="alice@example.com", password=STRONG_PASSWORD, ctx=ctx)
    account.is_email_verified = False
    await stores.accounts.save(account)

    with pytest.raises(EmailNotVerified):
        await service.verify_otp(
            role=Role.PATIENT,
            email="alice@example.com",
            code=notifier.last_code("alice@example.com", OTPPurpose.LOGIN),
            purpose=OTPPurpose.LOGIN,
            ctx=ctx,
        )
    assert await stores.sessions.count_active(account.id, UserType.PATIENT, account.created_at) == 0


@pytest.mark.asyncio
async def test_wrong_login_code_counts_attempts(service, stores, ctx, verified_account) -> None:
    await verified_account()
    await service.login(role=Role.PATIENT, email="alice@example.com", password=STRONG_PASSWORD, ctx=ctx)
    with pytest.raises(OtpInvalid) as excinfo:
        await service.verify_otp(
            role=Role.PATIENT, email="alice@example.com", code=WRONG_CODE, purpose=OTPPurpose.LOGIN, ctx=ctx
        )
    assert excinfo.value.extra["attempts_remaining"] == 2
    assert stores.audit.auth_logs[-1].action == AuthAction.FAILED_OTP.value


@pytest.mark.asyncio
async def test_reset_codes_are_not_accepted_by_verify_otp(service, ctx) -> None:
    with pytest.raises(ValidationFailed):
        await service.verify_otp(
            role=Role.PATIENT,
            email="alice@example.com",
            code="123456",
            purpose=OTPPurpose.PASSWORD_RESET,
            ctx=ctx,
        )


@pytest.mark.asyncio
async def test_login_delivery_failure_drops_code(service, notifier, ctx, verified_account) -> None:
    await verified_account()
    notifier.deliver = False
    with pytest.raises(OtpDeliveryFailed):
        await service.login(role=Role.PATIENT, email="alice@example.com", password=STRONG_PASSWORD, ctx=ctx)
    with pytest.raises(OtpNotFound):
        await service.verify_otp(
            role=Role.PATIENT,
            email="alice@example.com",
            code=notifier.last_code("alice@example.com", OTPPurpose.LOGIN),
            purpose=OTPPurpose.LOGIN,
            ctx=ctx,
        )


# ── Suspension ────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_suspended_doctor_sees_reason_and_admin_contact(service, stores, ctx, verified_account) -> None:
    doctor = await verified_account(email="house@example.com", role=Role.DOCTOR, name="Dr House")
    admin = await credentials.create_account(
        stores.accounts,
        Role.ADMIN,
        name="Ops Admin",
        email="ops@example.com",
        password=STRONG_PASSWORD,
        email_verified=True,
    )
    await credentials.set_suspension(
        stores.accounts, doctor, suspended=True, reason="Licence under review", admin_id=admin.id
    )

    with pytest.raises(AccountSuspended) as excinfo:
        await service.login(role=Role.DOCTOR, email="house@example.com", password=STRONG_PASSWORD, ctx=ctx)
    assert excinfo.value.status_code == 403
    assert excinfo.value.extra["suspension_reason"] == "Licence under review"
    assert excinfo.value.extra["admin_contact"] == {"name": "Ops Admin", "email": "ops@example.com"}


@pytest.mark.asyncio
async def test_suspension_between_login_steps_blocks_session(service, stores, notifier, ctx, verified_account) -> None:
    account = await verified_account()
    await service.login(role=Role.PATIENT, email="alice@example.com", password=STRONG_PASSWORD, ctx=ctx)
    await credentials.set_suspension(
        stores.accounts, account, suspended=True, reason=None, admin_id=uuid.uuid4()
    )
    with pytest.raises(AccountSuspended) as excinfo:
        await service.verify_otp(
            role=Role.PATIENT,
            email="alice@example.com",
            code=notifier.last_code("alice@example.com", OTPPurpose.LOGIN),
            purpose=OTPPurpose.LOGIN,
            ctx=ctx,
        )
    assert excinfo.value.extra["admin_contact"]["email"] == "support@healthconnect.com"


# ── Admin login ───────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_admin_login_skips_otp(service, stores, notifier, ctx) -> None:
    await credentials.create_account(
        stores.accounts,
        Role.SUPER_ADMIN,
        name="Root",
        email="root@example.com",
        password=STRONG_PASSWORD,
        email_verified=True,
    )
    completed = await service.admin_login(email="ROOT@example.com", password=STRONG_PASSWORD, ctx=ctx)

    assert completed.role is Role.SUPER_ADMIN
    assert completed.issued.session.user_type is UserType.ADMIN
    assert notifier.otps == []
    principal = await service.authenticate(completed.issued.token)
    assert principal.role is Role.SUPER_ADMIN

    with pytest.raises(InvalidCredentials):
        await service.admin_login(email="root@example.com", password="Wr0ng!pass", ctx=ctx)
    assert stores.audit.auth_logs[-1].action == AuthAction.FAILED_ADMIN_LOGIN.value


# ── Password reset ────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_forgot_password_for_unknown_email_returns_nothing(service, stores, notifier, ctx) -> None:
    assert await service.forgot_password(role=Role.PATIENT, email="ghost@example.com", ctx=ctx) is None
    assert notifier.otps == []
    assert stores.audit.auth_logs[-1].failure_reason == "User not found"


@pytest.mark.asyncio
async def test_password_reset_is_allowed_once(service, notifier, ctx, verified_account) -> None:
    account = await verified_account()
    await service.forgot_password(role=Role.PATIENT, email="alice@example.com", ctx=ctx)
    await service.reset_password(
        role=Role.PATIENT,
        email="alice@example.com",
        code=notifier.last_code("alice@example.com", OTPPurpose.PASSWORD_RESET),
        password=NEW_PASSWORD,
        confirm_password=NEW_PASSWORD,
        ctx=ctx,
    )

    assert account.password_reset_count == 1
    assert account.password_reset_used_at is not None
    assert credentials.verify_password(account, NEW_PASSWORD)
    assert notifier.password_changed == ["alice@example.com"]

    with pytest.raises(ResetLimitReached) as excinfo:
        await service.forgot_password(role=Role.PATIENT, email="alice@example.com", ctx=ctx)
    assert excinfo.value.status_code == 403
    assert excinfo.value.extra["reset_count"] == 1
    with pytest.raises(ResetLimitReached):
        await service.resend_otp(
            role=Role.PATIENT, email="alice@example.com", purpose=OTPPurpose.PASSWORD_RESET, ctx=ctx
        )


@pytest.mark.asyncio
async def test_reset_with_new_password_allows_login(service, notifier, ctx, verified_account) -> None:
    await verified_account()
    await service.forgot_password(role=Role.PATIENT, email="alice@example.com", ctx=ctx)
    await service.reset_password(
        role=Role.PATIENT,
        email="alice@example.com",
        code=notifier.last_code("alice@example.com", OTPPurpose.PASSWORD_RESET),
        password=NEW_PASSWORD,
        confirm_password=NEW_PASSWORD,
        ctx=ctx,
    )
    with pytest.raises(InvalidCredentials):
        await service.login(role=Role.PATIENT, email="alice@example.com", password=STRONG_PASSWORD, ctx=ctx)
    dispatch = await service.login(role=Role.PATIENT, email="alice@example.com", password=NEW_PASSWORD, ctx=ctx)
    assert dispatch.email == "alice@example.com"


@pytest.mark.asyncio
async def test_forgot_twice_sends_but_resend_waits(service, notifier, ctx, verified_account) -> None:
    await verified_account()
    await service.forgot_password(role=Role.PATIENT, email="alice@example.com", ctx=ctx)
    await service.forgot_password(role=Role.PATIENT, email="alice@example.com", ctx=ctx)
    sent = [p for _, _, p in notifier.otps if p is OTPPurpose.PASSWORD_RESET]
    assert len(sent) == 2

    with pytest.raises(RateLimited):
        await service.resend_otp(
            role=Role.PATIENT, email="alice@example.com", purpose=OTPPurpose.PASSWORD_RESET, ctx=ctx
        )


@pytest.mark.asyncio
async def test_reset_rejects_mismatch_and_wrong_code(service, ctx, verified_account) -> None:
    account = await verified_account()
    await service.forgot_password(role=Role.PATIENT, email="alice@example.com", ctx=ctx)
    with pytest.raises(ValidationFailed):
        await service.reset_password(
            role=Role.PATIENT,
            email="alice@example.com",
            code=WRONG_CODE,
            password=NEW_PASSWORD,
            confirm_password=NEW_PASSWORD + "x",
            ctx=ctx,
        )
    with pytest.raises(OtpInvalid):
        await service.reset_password(
            role=Role.PATIENT,
            email="alice@example.com",
            code=WRONG_CODE,
            password=NEW_PASSWORD,
            confirm_password=NEW_PASSWORD,
            ctx=ctx,
        )
    assert account.password_reset_count == 0
    assert credentials.verify_password(account, STRONG_PASSWORD)


# ── Authenticated operations ──────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_change_password(service, notifier, ctx, verified_account) -> None:
    account = await verified_account()
    principal = await service.authenticate((await _login(service, notifier, ctx)).issued.token)

    with pytest.raises(InvalidCredentials):
        await service.change_password(
            principal, current_password="Wr0ng!pass", new_password=NEW_PASSWORD, confirm_password=NEW_PASSWORD, ctx=ctx
        )
    with pytest.raises(ValidationFailed):
        await service.change_password(
            principal,
            current_password=STRONG_PASSWORD,
            new_password=STRONG_PASSWORD,
            confirm_password=STRONG_PASSWORD,
            ctx=ctx,
        )

    await service.change_password(
        principal, current_password=STRONG_PASSWORD, new_password=NEW_PASSWORD, confirm_password=NEW_PASSWORD, ctx=ctx
    )
    assert credentials.verify_password(account, NEW_PASSWORD)
    assert account.password_reset_count == 0
    assert notifier.password_changed == ["alice@example.com"]


@pytest.mark.asyncio
async def test_logout_ends_session(service, notifier, ctx, verified_account) -> None:
    account = await verified_account()
    token = (await _login(service, notifier, ctx)).issued.token
    await service.logout(await service.authenticate(token), ctx)

    assert account.last_logout is not None
    with pytest.raises(SessionExpired):
        await service.authenticate(token)


@pytest.mark.asyncio
async def test_current_session_cannot_be_revoked(service, notifier, ctx, verified_account) -> None:
    await verified_account()
    principal = await service.authenticate((await _login(service, notifier, ctx)).issued.token)

    with pytest.raises(CannotRevokeCurrentSession):
        await service.revoke_session(principal, principal.session.id)
    assert [s.id for s in await service.list_sessions(principal)] == [principal.session.id]
    assert await service.revoke_other_sessions(principal) == 0


@pytest.mark.asyncio
async def test_delete_account(service, stores, notifier, ctx, verified_account) -> None:
    account = await verified_account()
    token = (await _login(service, notifier, ctx)).issued.token
    await service.delete_account(await service.authenticate(token), ctx)

    assert await credentials.find_by_id(stores.accounts, UserType.PATIENT, account.id) is None
    with pytest.raises(TokenInvalid):
        await service.authenticate(token)
    with pytest.raises(AccountNotFound):
        await service.resend_otp(role=Role.PATIENT, email="alice@example.com", purpose=OTPPurpose.LOGIN, ctx=ctx)


@pytest.mark.asyncio
async def test_admins_cannot_delete_themselves(service, stores, ctx) -> None:
    await credentials.create_account(
        stores.accounts, Role.ADMIN, name="Ops", email="ops@example.com", password=STRONG_PASSWORD, email_verified=True
    )
    completed = await service.admin_login(email="ops@example.com", password=STRONG_PASSWORD, ctx=ctx)
    with pytest.raises(Forbidden):
        await service.delete_account(await service.authenticate(completed.issued.token), ctx)

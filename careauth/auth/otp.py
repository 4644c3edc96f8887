"""
OTP engine: issue, rate-limit and verify 6-digit codes per (email, purpose).

State per (email, purpose):

    NONE -> PENDING -> VERIFIED | EXPIRED | EXHAUSTED

EXPIRED and EXHAUSTED delete the record on the spot; VERIFIED keeps it until
the caller has finished with it and calls consume().  Outcomes are returned
as values (OtpCheck, RateLimitDecision); the orchestrator decides which ones
end the request.

Only an argon2 hash of the code is stored.  The plaintext is returned from
issue() for delivery and never persisted.
"""
from __future__ import annotations

import enum
import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from careauth.auth.constants import (
    OTP_EXPIRE_SECONDS,
    OTP_MAX_ATTEMPTS,
    OTP_RESEND_COOLDOWN_SECONDS,
    OTPPurpose,
    Role,
)
from careauth.auth.models import OTPRecord
from careauth.auth.utils import generate_otp, hash_password, normalize_email, verify_password
from careauth.config import Settings
from careauth.database import utcnow, with_defaults
from careauth.exceptions import OtpExhausted, OtpExpired, OtpInvalid, OtpNotFound
from careauth.storage.base import OtpStore


@dataclass(frozen=True)
class OtpPolicy:
    expire_seconds: int = OTP_EXPIRE_SECONDS
    max_attempts: int = OTP_MAX_ATTEMPTS
    cooldown_seconds: int = OTP_RESEND_COOLDOWN_SECONDS

    @classmethod
    def from_settings(cls, settings: Settings) -> OtpPolicy:
        return cls(
            expire_seconds=settings.otp_expire_seconds,
            max_attempts=settings.otp_max_attempts,
            cooldown_seconds=settings.otp_resend_cooldown_seconds,
        )


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    wait_seconds: int = 0


class OtpOutcome(str, enum.Enum):
    VERIFIED = "verified"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"
    INVALID = "invalid"


@dataclass(frozen=True)
class OtpCheck:
    outcome: OtpOutcome
    message: str
    attempts_remaining: int | None = None
    record: OTPRecord | None = None

    @property
    def success(self) -> bool:
        return self.outcome is OtpOutcome.VERIFIED

    def raise_for_failure(self) -> None:
        """Translate a failed check into the matching HTTP error."""
        if self.outcome is OtpOutcome.VERIFIED:
            return
        if self.outcome is OtpOutcome.NOT_FOUND:
            raise OtpNotFound(self.message)
        if self.outcome is OtpOutcome.EXPIRED:
            raise OtpExpired(self.message)
        if self.outcome is OtpOutcome.EXHAUSTED:
            raise OtpExhausted(self.message)
        raise OtpInvalid(self.message, self.attempts_remaining or 0)


@dataclass(frozen=True)
class IssuedOtp:
    record: OTPRecord
    code: str


async def check_rate_limit(
    store: OtpStore,
    email: str,
    purpose: OTPPurpose,
    policy: OtpPolicy,
    *,
    now: datetime | None = None,
) -> RateLimitDecision:
    """Deny when the newest record for (email, purpose), in any state, is inside the cool-down."""
    now = now or utcnow()
    latest = await store.latest(normalize_email(email), purpose, unverified_only=False)
    if latest is None:
        return RateLimitDecision(allowed=True)
    elapsed = (now - latest.created_at).total_seconds()
    if elapsed >= policy.cooldown_seconds:
        return RateLimitDecision(allowed=True)
    return RateLimitDecision(
        allowed=False,
        wait_seconds=max(1, math.ceil(policy.cooldown_seconds - elapsed)),
    )


async def issue(
    store: OtpStore,
    email: str,
    role: Role,
    purpose: OTPPurpose,
    policy: OtpPolicy,
) -> IssuedOtp:
    """Replace any pending code for (email, purpose) with a fresh one."""
    email = normalize_email(email)
    await store.delete_unverified(email, purpose)
    code = generate_otp()
    now = utcnow()
    record = with_defaults(
        OTPRecord(
            email=email,
            otp_hash=hash_password(code),
            role=role,
            purpose=purpose,
            verified=False,
            attempts=0,
            created_at=now,
            expires_at=now + timedelta(seconds=policy.expire_seconds),
        )
    )
    await store.add(record)
    return IssuedOtp(record=record, code=code)


async def verify(
    store: OtpStore,
    email: str,
    code: str,
    purpose: OTPPurpose,
    policy: OtpPolicy,
    *,
    now: datetime | None = None,
) -> OtpCheck:
    now = now or utcnow()
    record = await store.latest(normalize_email(email), purpose, unverified_only=True)
    if record is None:
        return OtpCheck(OtpOutcome.NOT_FOUND, "Invalid or expired OTP. Please request a new one.")

    if now > record.expires_at:
        await store.delete(record)
        return OtpCheck(OtpOutcome.EXPIRED, "OTP has expired. Please request a new one.")

    if record.attempts >= policy.max_attempts:
        await store.delete(record)
        return OtpCheck(
            OtpOutcome.EXHAUSTED,
            "Maximum verification attempts exceeded. Please request a new OTP.",
            attempts_remaining=0,
        )

    if not verify_password(code, record.otp_hash):
        record.attempts += 1
        await store.save(record)
        remaining = max(0, policy.max_attempts - record.attempts)
        return OtpCheck(
            OtpOutcome.INVALID,
            f"Invalid OTP. {remaining} attempt(s) remaining.",
            attempts_remaining=remaining,
        )

    record.verified = True
    await store.save(record)
    return OtpCheck(OtpOutcome.VERIFIED, "OTP verified successfully.", record=record)


async def consume(store: OtpStore, check: OtpCheck) -> None:
    """Delete a verified record once the flow that needed it has completed."""
    if check.record is not None:
        await store.delete(check.record)


async def discard(store: OtpStore, issued: IssuedOtp) -> None:
    """Drop a code that could not be delivered."""
    await store.delete(issued.record)


async def purge_expired(store: OtpStore) -> int:
    return await store.delete_expired(utcnow())

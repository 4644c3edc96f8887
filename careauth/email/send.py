"""
Email delivery orchestrator: SMTP (primary) with Brevo (fallback).

Every send_* function returns True when a provider accepted the message and
False otherwise.  None of them raise, so an email outage never breaks the
primary user-facing flow; callers decide whether a False matters.

Delivery order:
  1. SMTP, if configured
  2. Brevo, if SMTP fails or is not configured
"""
from __future__ import annotations

import logging

from careauth.auth.constants import OTPPurpose
from careauth.config import Settings
from careauth.email import brevo, smtp
from careauth.email.message import OutgoingEmail

logger = logging.getLogger(__name__)

_OTP_SUBJECTS = {
    OTPPurpose.REGISTRATION: "Verify your email",
    OTPPurpose.LOGIN: "Your login code",
    OTPPurpose.PASSWORD_RESET: "Password reset code",
}


# ── Delivery core ────────────────────────────────────────────────────────────

async def deliver(email: OutgoingEmail, settings: Settings) -> bool:
    """Try SMTP first, fall back to Brevo.  Never raises."""
    if smtp.is_configured(settings):
        if await smtp.deliver(email, settings):
            return True
        logger.warning("SMTP failed for %s; falling back to Brevo", email.to_email)

    if brevo.is_configured(settings):
        if await brevo.deliver(email, settings):
            return True
        logger.error("Brevo fallback also failed for %s", email.to_email)
        return False

    if smtp.is_configured(settings):
        return False

    # Development runs without a provider; codes are exposed in the API response there.
    logger.warning("No email provider configured; skipping email to %s", email.to_email)
    return settings.is_development


# ── Message builders ─────────────────────────────────────────────────────────

def otp_email(to_email: str, name: str, code: str, purpose: OTPPurpose, settings: Settings) -> OutgoingEmail:
    minutes = settings.otp_expire_seconds // 60
    return OutgoingEmail(
        to_email=to_email,
        to_name=name,
        subject=f"{_OTP_SUBJECTS[purpose]} | {settings.app_name}",
        html=(
            f"<p>Hi {name},</p>"
            f"<p>Your verification code is <strong style='font-size:20px'>{code}</strong>.</p>"
            f"<p>It expires in {minutes} minutes. If you did not request it, ignore this email.</p>"
        ),
        text=(
            f"Hi {name},\n\nYour verification code is {code}.\n"
            f"It expires in {minutes} minutes. If you did not request it, ignore this email.\n"
        ),
    )


def welcome_email(to_email: str, name: str, settings: Settings) -> OutgoingEmail:
    body = (
        f"Your email is verified and your {settings.app_name} account is ready. "
        "You can now sign in and book appointments."
    )
    return OutgoingEmail(
        to_email=to_email,
        to_name=name,
        subject=f"Welcome to {settings.app_name}!",
        html=f"<p>Hi {name},</p><p>{body}</p>",
        text=f"Hi {name},\n\n{body}\n",
    )


def password_changed_email(to_email: str, name: str, settings: Settings) -> OutgoingEmail:
    body = (
        "The password on your account was just changed. If this wasn't you, "
        f"contact {settings.support_email} immediately."
    )
    return OutgoingEmail(
        to_email=to_email,
        to_name=name,
        subject=f"Your password was changed | {settings.app_name}",
        html=f"<p>Hi {name},</p><p>{body}</p>",
        text=f"Hi {name},\n\n{body}\n",
    )

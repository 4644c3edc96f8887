"""
Async SMTP delivery via aiosmtplib (primary provider).

Messages go out as multipart/alternative (plain text + HTML) over STARTTLS,
with Reply-To pointing at the support mailbox.  Returns True on success,
False on any SMTP or network failure.
"""
from __future__ import annotations

import logging
from email.message import EmailMessage
from email.utils import formataddr

import aiosmtplib

from careauth.config import Settings
from careauth.email.message import OutgoingEmail

logger = logging.getLogger(__name__)

SMTP_TIMEOUT_SECONDS = 15


def is_configured(settings: Settings) -> bool:
    return bool(settings.smtp_host and settings.smtp_username)


def build_message(email: OutgoingEmail, settings: Settings) -> EmailMessage:
    sender = settings.smtp_from_email or settings.smtp_username
    msg = EmailMessage()
    msg["From"] = formataddr((settings.smtp_from_name, sender))
    msg["To"] = formataddr((email.to_name, email.to_email))
    msg["Reply-To"] = settings.support_email
    msg["Subject"] = email.subject
    msg.set_content(email.text)
    msg.add_alternative(email.html, subtype="html")
    return msg


async def deliver(email: OutgoingEmail, settings: Settings) -> bool:
    if not is_configured(settings):
        return False
    try:
        await aiosmtplib.send(
            build_message(email, settings),
            hostname=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            start_tls=settings.smtp_start_tls,
            timeout=SMTP_TIMEOUT_SECONDS,
        )
    except (aiosmtplib.SMTPException, OSError) as exc:
        logger.error("SMTP delivery failed (%s -> %s): %s", settings.smtp_host, email.to_email, exc)
        return False
    return True

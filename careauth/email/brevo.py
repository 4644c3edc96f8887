"""
Brevo (Sendinblue) transactional email API, used as the SMTP fallback.

Returns True when Brevo accepted the message, False otherwise.
"""
from __future__ import annotations

import logging

import httpx

from careauth.config import Settings
from careauth.email.message import OutgoingEmail

logger = logging.getLogger(__name__)

BREVO_URL = "https://api.brevo.com/v3/smtp/email"


def is_configured(settings: Settings) -> bool:
    return bool(settings.brevo_api_key)


def build_payload(email: OutgoingEmail, settings: Settings) -> dict:
    return {
        "sender": {"email": settings.brevo_from_email, "name": settings.brevo_from_name},
        "to": [{"email": email.to_email, "name": email.to_name}],
        "replyTo": {"email": settings.support_email, "name": settings.support_name},
        "subject": email.subject,
        "htmlContent": email.html,
        "textContent": email.text,
    }


async def deliver(
    email: OutgoingEmail,
    settings: Settings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> bool:
    if not is_configured(settings):
        return False
    try:
        async with httpx.AsyncClient(timeout=10.0, transport=transport) as client:
            response = await client.post(
                BREVO_URL,
                json=build_payload(email, settings),
                headers={"api-key": settings.brevo_api_key, "Accept": "application/json"},
            )
    except httpx.HTTPError as exc:
        logger.error("Brevo request failed for %s: %s", email.to_email, exc)
        return False
    if response.is_error:
        logger.error("Brevo error %s: %s", response.status_code, response.text[:300])
        return False
    return True

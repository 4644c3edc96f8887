"""Provider-neutral outgoing email."""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class OutgoingEmail:
    to_email: str
    to_name: str
    subject: str
    html: str
    # Plain-text part for clients that do not render HTML.
    text: str

"""
Notifier seam used by the auth orchestrator.

EmailNotifier is the production implementation; tests swap in a recording
double through ``app.state.notifier``.
"""
from __future__ import annotations

from typing import Protocol

from careauth.auth.constants import OTPPurpose
from careauth.config import Settings
from careauth.email import send


class Notifier(Protocol):
    async def send_otp(self, email: str, name: str, code: str, purpose: OTPPurpose) -> bool: ...

    async def send_welcome(self, email: str, name: str) -> bool: ...

    async def send_password_changed(self, email: str, name: str) -> bool: ...


class EmailNotifier:
    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    async def send_otp(self, email: str, name: str, code: str, purpose: OTPPurpose) -> bool:
        return await send.deliver(send.otp_email(email, name, code, purpose, self.settings), self.settings)

    async def send_welcome(self, email: str, name: str) -> bool:
        return await send.deliver(send.welcome_email(email, name, self.settings), self.settings)

    async def send_password_changed(self, email: str, name: str) -> bool:
        return await send.deliver(send.password_changed_email(email, name, self.settings), self.settings)

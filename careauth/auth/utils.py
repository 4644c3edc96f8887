from __future__ import annotations

import random
import re
from dataclasses import dataclass

from fastapi import Request
from passlib.context import CryptContext

from careauth.auth.constants import OTP_MAX, OTP_MIN

context = CryptContext(schemes=["argon2"], deprecated="auto")


def configure_hashing(time_cost: int) -> None:
    """Apply the configured argon2 work factor; existing hashes still verify."""
    context.update(argon2__rounds=time_cost)


def hash_password(password: str) -> str:
    return context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return context.verify(plain, hashed)


def generate_otp() -> str:
    return f"{random.SystemRandom().randint(OTP_MIN, OTP_MAX)}"


def normalize_email(email: str) -> str:
    return email.strip().lower()


# ── Password policy ───────────────────────────────────────────────────────────

_PASSWORD_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"[A-Z]"), "one uppercase letter"),
    (re.compile(r"[a-z]"), "one lowercase letter"),
    (re.compile(r"\d"), "one number"),
    (re.compile(r"[^A-Za-z0-9]"), "one special character"),
)


def password_problems(password: str) -> list[str]:
    """Return the unmet strength rules; empty when the password is acceptable."""
    problems = []
    if len(password) < 8:
        problems.append("at least 8 characters")
    problems.extend(label for pattern, label in _PASSWORD_RULES if not pattern.search(password))
    return problems


# ── Request context ───────────────────────────────────────────────────────────

def client_ip(request: Request) -> str | None:
    """Extract client IP from the request, honouring X-Forwarded-For then X-Real-IP."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else None


def parse_user_agent(user_agent: str | None) -> dict[str, str]:
    """Coarse browser / OS / device classification for the sessions list."""
    if not user_agent:
        return {"browser": "Unknown", "os": "Unknown", "device": "Unknown"}

    ua = user_agent.lower()

    if "edg/" in ua:
        browser = "Edge"
    elif "opr/" in ua or "opera" in ua:
        browser = "Opera"
    elif "chrome" in ua or "crios" in ua:
        browser = "Chrome"
    elif "firefox" in ua or "fxios" in ua:
        browser = "Firefox"
    elif "safari" in ua:
        browser = "Safari"
    else:
        browser = "Unknown"

    # Order matters: Android UAs contain "linux", iOS UAs contain "mac os x".
    if "android" in ua:
        os_name = "Android"
    elif "iphone" in ua or "ipad" in ua or "ipod" in ua:
        os_name = "iOS"
    elif "windows" in ua:
        os_name = "Windows"
    elif "mac os" in ua or "macintosh" in ua:
        os_name = "macOS"
    elif "linux" in ua:
        os_name = "Linux"
    else:
        os_name = "Unknown"

    if "ipad" in ua or "tablet" in ua:
        device = "Tablet"
    elif "mobile" in ua or "iphone" in ua:
        device = "Mobile"
    else:
        device = "Desktop"

    return {"browser": browser, "os": os_name, "device": device}


@dataclass(frozen=True)
class RequestContext:
    """HTTP-layer facts the auth flows record (sessions, audit log)."""

    ip_address: str | None = None
    user_agent: str | None = None

    @classmethod
    def from_request(cls, request: Request) -> RequestContext:
        return cls(ip_address=client_ip(request), user_agent=request.headers.get("User-Agent"))

    @property
    def device_info(self) -> dict[str, str]:
        return parse_user_agent(self.user_agent)

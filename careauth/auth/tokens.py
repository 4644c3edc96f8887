"""
Token issuer: signed session tokens, the cookie that carries them, and the
session row each one is bound to.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from fastapi import Response
from jose import ExpiredSignatureError, JWTError, jwt

from careauth.auth import sessions
from careauth.auth.constants import Role, user_type_for
from careauth.auth.locks import KeyedLock
from careauth.auth.models import AuthSession
from careauth.auth.sessions import EnforcementResult
from careauth.auth.utils import RequestContext
from careauth.config import Settings
from careauth.database import utcnow
from careauth.exceptions import TokenExpired, TokenInvalid
from careauth.storage.base import SessionStore


@dataclass(frozen=True)
class TokenClaims:
    subject_id: uuid.UUID
    role: Role
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class IssuedToken:
    token: str
    session: AuthSession
    enforcement: EnforcementResult


def mint(user_id: uuid.UUID, role: Role, settings: Settings) -> str:
    now = utcnow()
    payload = {
        "sub": str(user_id),
        "role": role.value,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=settings.session_expire_seconds)).timestamp()),
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        # Two logins inside the same second must still yield distinct tokens.
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode(token: str, settings: Settings) -> TokenClaims:
    """Verify signature, issuer, audience and expiry.  Raises TokenInvalid / TokenExpired."""
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
        )
    except ExpiredSignatureError:
        raise TokenExpired() from None
    except JWTError:
        raise TokenInvalid() from None

    try:
        return TokenClaims(
            subject_id=uuid.UUID(payload["sub"]),
            role=Role(payload["role"]),
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )
    except (KeyError, ValueError, TypeError):
        raise TokenInvalid() from None


async def issue(
    store: SessionStore,
    locks: KeyedLock,
    *,
    user_id: uuid.UUID,
    role: Role,
    ctx: RequestContext,
    settings: Settings,
) -> IssuedToken:
    """Mint a token and open its session (single-device enforcement included)."""
    token = mint(user_id, role, settings)
    record, enforcement = await sessions.open_session(
        store,
        locks,
        user_id=user_id,
        user_type=user_type_for(role),
        token=token,
        ctx=ctx,
        expire_seconds=settings.session_expire_seconds,
    )
    return IssuedToken(token=token, session=record, enforcement=enforcement)


# ── Cookie binding ────────────────────────────────────────────────────────────

def set_session_cookie(response: Response, token: str, settings: Settings) -> None:
    response.set_cookie(
        key=settings.cookie_name,
        value=token,
        max_age=settings.session_expire_seconds,
        httponly=True,
        samesite="strict",
        secure=settings.cookie_secure,
        path="/",
    )


def clear_session_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        key=settings.cookie_name,
        httponly=True,
        samesite="strict",
        secure=settings.cookie_secure,
        path="/",
    )

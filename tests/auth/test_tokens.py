import uuid
from datetime import timedelta

import pytest
from fastapi import Response
from jose import jwt

from careauth.auth import tokens
from careauth.auth.constants import Role, UserType
from careauth.auth.locks import LocalKeyedLock
from careauth.auth.utils import RequestContext
from careauth.database import utcnow
from careauth.exceptions import TokenExpired, TokenInvalid
from careauth.storage.memory import MemorySessionStore
from tests.conftest import make_settings


def test_mint_and_decode_round_trip() -> None:
    settings = make_settings()
    user_id = uuid.uuid4()
    claims = tokens.decode(tokens.mint(user_id, Role.DOCTOR, settings), settings)
    assert claims.subject_id == user_id
    assert claims.role is Role.DOCTOR
    assert claims.expires_at - claims.issued_at == timedelta(days=7)


def test_tokens_minted_together_differ() -> None:
    settings = make_settings()
    user_id = uuid.uuid4()
    assert tokens.mint(user_id, Role.PATIENT, settings) != tokens.mint(user_id, Role.PATIENT, settings)


def test_tampered_token_is_invalid() -> None:
    settings = make_settings()
    token = tokens.mint(uuid.uuid4(), Role.PATIENT, settings)
    with pytest.raises(TokenInvalid):
        tokens.decode(token, make_settings(jwt_secret="another-secret"))
    with pytest.raises(TokenInvalid):
        header, payload, signature = token.split(".")
        tokens.decode(".".join([header, payload, signature[::-1]]), settings)
    with pytest.raises(TokenInvalid):
        tokens.decode("not-a-token", settings)


def test_wrong_audience_is_invalid() -> None:
    settings = make_settings()
    token = tokens.mint(uuid.uuid4(), Role.PATIENT, settings)
    with pytest.raises(TokenInvalid):
        tokens.decode(token, make_settings(jwt_audience="someone-else"))


def test_expired_token() -> None:
    settings = make_settings()
    now = int(utcnow().timestamp())
    token = jwt.encode(
        {
            "sub": str(uuid.uuid4()),
            "role": "patient",
            "iat": now - 100,
            "exp": now - 10,
            "iss": settings.jwt_issuer,
            "aud": settings.jwt_audience,
        },
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )
    with pytest.raises(TokenExpired):
        tokens.decode(token, settings)


def test_unknown_role_claim_is_invalid() -> None:
    settings = make_settings()
    now = int(utcnow().timestamp())
    token = jwt.encode(
        {
            "sub": str(uuid.uuid4()),
            "role": "nurse",
            "iat": now,
            "exp": now + 60,
            "iss": settings.jwt_issuer,
            "aud": settings.jwt_audience,
        },
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )
    with pytest.raises(TokenInvalid):
        tokens.decode(token, settings)


@pytest.mark.asyncio
async def test_issue_opens_session_for_role_user_type() -> None:
    store = MemorySessionStore()
    settings = make_settings()
    issued = await tokens.issue(
        store,
        LocalKeyedLock(),
        user_id=uuid.uuid4(),
        role=Role.SUPER_ADMIN,
        ctx=RequestContext(),
        settings=settings,
    )
    assert issued.session.token == issued.token
    assert issued.session.user_type is UserType.ADMIN
    assert issued.enforcement.revoked_count == 0


def test_session_cookie_attributes() -> None:
    response = Response()
    tokens.set_session_cookie(response, "abc", make_settings(env_name="production"))
    cookie = response.headers["set-cookie"]
    assert cookie.startswith("token=abc")
    assert "HttpOnly" in cookie
    assert "SameSite=strict" in cookie
    assert "Secure" in cookie
    assert "Max-Age=604800" in cookie


def test_session_cookie_not_secure_outside_production() -> None:
    response = Response()
    tokens.set_session_cookie(response, "abc", make_settings(env_name="development"))
    assert "Secure" not in response.headers["set-cookie"]

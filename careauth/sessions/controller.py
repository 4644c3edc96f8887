"""
Device-session controller: list, inspect and revoke the caller's sessions.

Ownership checks and the "not the current session" rule live in AuthService;
this layer only marks the current session and shapes responses.
"""
from __future__ import annotations

import uuid

from careauth.auth.models import AuthSession
from careauth.auth.service import AuthService, Principal
from careauth.sessions.schemas import (
    CurrentSessionResponse,
    RevokedOthersResponse,
    RevokedSessionResponse,
    SessionListResponse,
    SessionView,
)


def _view(record: AuthSession, principal: Principal) -> SessionView:
    view = SessionView.model_validate(record)
    view.is_current = record.id == principal.session.id
    return view


async def list_sessions(service: AuthService, principal: Principal) -> SessionListResponse:
    records = await service.list_sessions(principal)
    return SessionListResponse(
        count=len(records),
        data=[_view(record, principal) for record in records],
    )


def current_session(principal: Principal) -> CurrentSessionResponse:
    return CurrentSessionResponse(data=_view(principal.session, principal))


async def revoke_session(
    service: AuthService, principal: Principal, session_id: uuid.UUID
) -> RevokedSessionResponse:
    record = await service.revoke_session(principal, session_id)
    return RevokedSessionResponse(message="Session revoked successfully.", session_id=record.id)


async def revoke_other_sessions(service: AuthService, principal: Principal) -> RevokedOthersResponse:
    count = await service.revoke_other_sessions(principal)
    return RevokedOthersResponse(
        message=f"Logged out from {count} other device(s).",
        revoked_count=count,
    )

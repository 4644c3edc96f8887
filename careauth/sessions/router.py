"""
Device-session router.

Every route requires an authenticated caller and only ever touches that
caller's own sessions.
"""
import uuid

from fastapi import APIRouter, Depends

from careauth.auth.dependencies import get_auth_service, get_current_principal
from careauth.auth.service import AuthService, Principal
from careauth.sessions import controller
from careauth.sessions.schemas import (
    CurrentSessionResponse,
    RevokedOthersResponse,
    RevokedSessionResponse,
    SessionListResponse,
)

router = APIRouter(prefix="/auth/sessions", tags=["sessions"])


@router.get("", response_model=SessionListResponse, summary="List active sessions")
async def list_sessions(
    principal: Principal = Depends(get_current_principal),
    service: AuthService = Depends(get_auth_service),
) -> SessionListResponse:
    return await controller.list_sessions(service, principal)


@router.get(
    "/current",
    response_model=CurrentSessionResponse,
    summary="Session bound to the presented token",
)
async def current_session(
    principal: Principal = Depends(get_current_principal),
) -> CurrentSessionResponse:
    return controller.current_session(principal)


@router.delete(
    "/{session_id}",
    response_model=RevokedSessionResponse,
    summary="Revoke one of your other sessions",
)
async def revoke_session(
    session_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    service: AuthService = Depends(get_auth_service),
) -> RevokedSessionResponse:
    return await controller.revoke_session(service, principal, session_id)


@router.delete(
    "",
    response_model=RevokedOthersResponse,
    summary="Log out from every other device",
)
async def revoke_other_sessions(
    principal: Principal = Depends(get_current_principal),
    service: AuthService = Depends(get_auth_service),
) -> RevokedOthersResponse:
    return await controller.revoke_other_sessions(service, principal)

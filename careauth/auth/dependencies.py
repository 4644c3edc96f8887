"""
FastAPI dependencies shared by the auth, sessions and admin routers.

Per-request wiring:
  settings        app.state.settings
  stores          memory stores (app.state.memory_stores) or SQL stores bound
                  to one unit of work (database.session_scope)
  auth service    AuthService over those stores plus app.state notifier/locks
  principal       token (cookie or Bearer) -> account + active session
"""
from __future__ import annotations

from collections.abc import AsyncGenerator

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from careauth.auth.constants import ADMIN_ROLES, Role
from careauth.auth.service import AuthService, Principal
from careauth.auth.utils import RequestContext
from careauth.config import Settings
from careauth.database import session_scope
from careauth.exceptions import Forbidden, NotAuthenticated
from careauth.storage.base import Stores
from careauth.storage.sql import sql_stores

http_bearer = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_request_context(request: Request) -> RequestContext:
    return RequestContext.from_request(request)


async def get_stores(request: Request) -> AsyncGenerator[Stores, None]:
    memory = getattr(request.app.state, "memory_stores", None)
    if memory is not None:
        yield memory
        return
    async with session_scope() as session:
        yield sql_stores(session)


def get_auth_service(
    request: Request,
    stores: Stores = Depends(get_stores),
    settings: Settings = Depends(get_settings),
) -> AuthService:
    return AuthService(
        stores,
        settings,
        notifier=request.app.state.notifier,
        locks=request.app.state.session_locks,
    )


def _presented_token(
    request: Request,
    settings: Settings,
    credentials: HTTPAuthorizationCredentials | None,
) -> str | None:
    token = request.cookies.get(settings.cookie_name)
    if token:
        return token
    if credentials and credentials.credentials:
        return credentials.credentials
    return None


async def get_current_principal(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(http_bearer),
    settings: Settings = Depends(get_settings),
    service: AuthService = Depends(get_auth_service),
) -> Principal:
    """Resolve the caller from the session cookie (or a Bearer header)."""
    token = _presented_token(request, settings, credentials)
    if token is None:
        raise NotAuthenticated()
    return await service.authenticate(token)


# ── Role guards ───────────────────────────────────────────────────────────────

def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    """Raise 403 unless the caller holds the admin or super_admin role."""
    if principal.role not in ADMIN_ROLES:
        raise Forbidden("Admin access required.")
    return principal


def require_super_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    if principal.role is not Role.SUPER_ADMIN:
        raise Forbidden("Super admin access required.")
    return principal

"""
Super admin bootstrap.

Used by the app lifespan (BOOTSTRAP_ADMIN_EMAIL / BOOTSTRAP_ADMIN_PASSWORD)
and by scripts/create_superadmin.py.  Idempotent: an existing admin with the
same email is upgraded to super_admin instead of duplicated.
"""
from __future__ import annotations

import logging

from careauth.admin import service
from careauth.auth.constants import Role, UserType
from careauth.auth.models import Account
from careauth.auth.utils import normalize_email
from careauth.config import Settings
from careauth.database import session_scope
from careauth.exceptions import AuthError
from careauth.storage.base import Stores
from careauth.storage.sql import sql_stores

logger = logging.getLogger(__name__)


async def ensure_super_admin(stores: Stores, *, email: str, password: str, name: str) -> Account | None:
    email = normalize_email(email)
    existing = await stores.accounts.find_by_email(UserType.ADMIN, email)
    if existing is not None:
        if Role(existing.role) is not Role.SUPER_ADMIN:
            existing.role = Role.SUPER_ADMIN
            await stores.accounts.save(existing)
            logger.info("Upgraded admin %s to super_admin", email)
        return existing
    if await stores.accounts.email_taken(email):
        logger.error("Cannot bootstrap super admin: %s belongs to a non-admin account", email)
        return None

    account = await service.create_admin(
        stores, None, name=name, email=email, password=password, role=Role.SUPER_ADMIN
    )
    logger.info("Super admin created: %s (id=%s)", email, account.id)
    return account


async def bootstrap_admin(settings: Settings, memory_stores: Stores | None = None) -> None:
    """Create the configured super admin at startup; failures are logged, not raised."""
    if not (settings.bootstrap_admin_email and settings.bootstrap_admin_password):
        return
    kwargs = {
        "email": settings.bootstrap_admin_email,
        "password": settings.bootstrap_admin_password,
        "name": settings.bootstrap_admin_name,
    }
    try:
        if memory_stores is not None:
            await ensure_super_admin(memory_stores, **kwargs)
            return
        async with session_scope() as session:
            await ensure_super_admin(sql_stores(session), **kwargs)
    except AuthError as exc:
        logger.error("Super admin bootstrap rejected: %s", exc.detail)

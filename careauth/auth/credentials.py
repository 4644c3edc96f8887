"""
Credential store: account lookup, creation and the mutations that change an
account's trust state (password, suspension, verification).

Pure functions over an explicit AccountStore; zero FastAPI request handling.
"""
from __future__ import annotations

import logging
import uuid
from typing import Any

from careauth.auth.constants import (
    DEFAULT_SUSPENSION_REASON,
    Role,
    UserType,
    VerificationStatus,
    user_type_for,
)
from careauth.auth.models import ACCOUNT_MODELS, Account, Admin
from careauth.auth.utils import hash_password, normalize_email, password_problems
from careauth.auth.utils import verify_password as _verify_hash
from careauth.database import utcnow, with_defaults
from careauth.exceptions import DuplicateEmail, ValidationFailed
from careauth.storage.base import AccountStore

logger = logging.getLogger(__name__)

# Fields an account may change about itself through PUT /auth/me.
PROFILE_FIELDS: dict[UserType, frozenset[str]] = {
    UserType.DOCTOR: frozenset(
        {"name", "specialization", "experience", "qualification", "about", "contact_number", "avatar"}
    ),
    UserType.PATIENT: frozenset(
        {
            "name",
            "date_of_birth",
            "gender",
            "contact_number",
            "blood_group",
            "allergies",
            "emergency_contacts",
        }
    ),
    UserType.ADMIN: frozenset({"name", "avatar"}),
}


# ── Queries ───────────────────────────────────────────────────────────────────

async def find_by_email(store: AccountStore, role: Role | str, email: str) -> Account | None:
    return await store.find_by_email(user_type_for(role), normalize_email(email))


async def find_by_id(
    store: AccountStore, user_type: UserType, account_id: uuid.UUID
) -> Account | None:
    return await store.get(user_type, account_id)


# ── Creation ──────────────────────────────────────────────────────────────────

def assert_strong_password(password: str) -> None:
    problems = password_problems(password)
    if problems:
        raise ValidationFailed(
            "Password must contain " + ", ".join(problems) + ".",
            errors=[{"field": "password", "message": p} for p in problems],
        )


async def create_account(
    store: AccountStore,
    role: Role,
    *,
    name: str,
    email: str,
    password: str,
    profile: dict[str, Any] | None = None,
    email_verified: bool = False,
    created_by: uuid.UUID | None = None,
) -> Account:
    """
    Create an unverified account for ``role``.

    Email uniqueness is checked across every role's collection, not only the
    one being written to.
    """
    email = normalize_email(email)
    if await store.email_taken(email):
        raise DuplicateEmail()
    assert_strong_password(password)

    user_type = user_type_for(role)
    model = ACCOUNT_MODELS[user_type]
    fields = dict(profile or {})
    unknown = set(fields) - PROFILE_FIELDS[user_type]
    if unknown:
        raise ValidationFailed(f"Unknown profile fields: {', '.join(sorted(unknown))}.")
    if user_type is UserType.ADMIN:
        fields["role"] = role
        fields["created_by"] = created_by

    account = with_defaults(
        model(
            name=name,
            email=email,
            password_hash=hash_password(password),
            is_email_verified=email_verified,
            email_verified_at=utcnow() if email_verified else None,
            **fields,
        )
    )
    return await store.add(account)


# ── Passwords ─────────────────────────────────────────────────────────────────

def verify_password(account: Account, candidate: str) -> bool:
    return _verify_hash(candidate, account.password_hash)


def _rehash(account: Account, new_password: str) -> None:
    assert_strong_password(new_password)
    account.password_hash = hash_password(new_password)
    account.password_changed_at = utcnow()


async def set_password(store: AccountStore, account: Account, new_password: str) -> None:
    """Re-hash and persist; bumps ``password_changed_at``."""
    _rehash(account, new_password)
    await store.save(account)


async def apply_password_reset(store: AccountStore, account: Account, new_password: str) -> None:
    """Set the new password and spend one lifetime reset, in a single save."""
    _rehash(account, new_password)
    account.password_reset_count += 1
    account.password_reset_used_at = account.password_changed_at
    account.password_reset_token = None
    account.password_reset_expires = None
    await store.save(account)


# ── Email verification / login bookkeeping ────────────────────────────────────

async def mark_email_verified(store: AccountStore, account: Account) -> None:
    account.is_email_verified = True
    account.email_verified_at = utcnow()
    await store.save(account)


async def record_login(store: AccountStore, account: Account) -> None:
    account.last_login = utcnow()
    await store.save(account)


async def record_logout(store: AccountStore, account: Account) -> None:
    account.last_logout = utcnow()
    await store.save(account)


# ── Admin-driven state ────────────────────────────────────────────────────────

async def set_suspension(
    store: AccountStore,
    account: Account,
    *,
    suspended: bool,
    reason: str | None,
    admin_id: uuid.UUID,
) -> None:
    if suspended:
        account.is_active = False
        account.suspended_by = admin_id
        account.suspended_at = utcnow()
        account.suspension_reason = reason
    else:
        account.is_active = True
        account.suspended_by = None
        account.suspended_at = None
        account.suspension_reason = None
    await store.save(account)


async def set_verification_status(
    store: AccountStore,
    account: Account,
    status: VerificationStatus,
    admin_id: uuid.UUID,
) -> None:
    account.verification_status = status
    account.verified_by = admin_id
    account.verified_at = utcnow()
    if status is VerificationStatus.REJECTED:
        account.is_active = False
    await store.save(account)


async def update_profile(store: AccountStore, account: Account, changes: dict[str, Any]) -> Account:
    """Apply an allow-listed profile update; unknown fields are rejected, not ignored."""
    allowed = PROFILE_FIELDS[account.user_type]
    unknown = set(changes) - allowed
    if unknown:
        raise ValidationFailed(f"These fields cannot be updated: {', '.join(sorted(unknown))}.")
    for field, value in changes.items():
        setattr(account, field, value)
    await store.save(account)
    return account


async def admin_contact(
    store: AccountStore, account: Account, *, fallback_name: str, fallback_email: str
) -> dict[str, str]:
    """Resolve who suspended ``account``; dangling references fall back to support."""
    admin: Admin | None = None
    if account.suspended_by is not None:
        admin = await store.get(UserType.ADMIN, account.suspended_by)
    if admin is None:
        return {"name": fallback_name, "email": fallback_email}
    return {"name": admin.name, "email": admin.email}


def suspension_reason(account: Account) -> str:
    return account.suspension_reason or DEFAULT_SUSPENSION_REASON

import uuid

import pytest

from careauth.auth import credentials
from careauth.auth.constants import Role, UserType, VerificationStatus
from careauth.auth.utils import parse_user_agent, password_problems
from careauth.exceptions import DuplicateEmail, ValidationFailed
from careauth.storage.memory import MemoryAccountStore
from tests.conftest import STRONG_PASSWORD


@pytest.mark.asyncio
async def test_create_normalises_email_and_hashes_password() -> None:
    store = MemoryAccountStore()
    account = await credentials.create_account(
        store, Role.PATIENT, name="Alice", email="  Alice@Example.COM ", password=STRONG_PASSWORD
    )
    assert account.email == "alice@example.com"
    assert account.password_hash != STRONG_PASSWORD
    assert not account.is_email_verified
    assert account.is_active
    assert account.verification_status is VerificationStatus.PENDING
    assert account.password_reset_count == 0
    assert account.allergies == []


@pytest.mark.asyncio
async def test_email_is_unique_across_roles() -> None:
    store = MemoryAccountStore()
    await credentials.create_account(
        store, Role.DOCTOR, name="Dr Who", email="who@example.com", password=STRONG_PASSWORD
    )
    with pytest.raises(DuplicateEmail):
        await credentials.create_account(
            store, Role.PATIENT, name="Who", email="WHO@example.com", password=STRONG_PASSWORD
        )


@pytest.mark.asyncio
async def test_weak_password_lists_unmet_rules() -> None:
    store = MemoryAccountStore()
    with pytest.raises(ValidationFailed) as excinfo:
        await credentials.create_account(
            store, Role.PATIENT, name="Weak", email="weak@example.com", password="password"
        )
    assert excinfo.value.extra["errors"]


def test_password_problems() -> None:
    assert password_problems(STRONG_PASSWORD) == []
    assert password_problems("Sh0rt!") == ["at least 8 characters"]
    assert set(password_problems("alllowercase")) == {
        "one uppercase letter",
        "one number",
        "one special character",
    }


@pytest.mark.asyncio
async def test_unknown_profile_field_is_rejected() -> None:
    store = MemoryAccountStore()
    with pytest.raises(ValidationFailed):
        await credentials.create_account(
            store,
            Role.PATIENT,
            name="Alice",
            email="alice@example.com",
            password=STRONG_PASSWORD,
            profile={"specialization": "Cardiology"},
        )


@pytest.mark.asyncio
async def test_set_password_round_trip() -> None:
    store = MemoryAccountStore()
    account = await credentials.create_account(
        store, Role.PATIENT, name="Alice", email="alice@example.com", password=STRONG_PASSWORD
    )
    await credentials.set_password(store, account, "N3w!Passw0rd")

    assert credentials.verify_password(account, "N3w!Passw0rd")
    assert not credentials.verify_password(account, STRONG_PASSWORD)
    assert not credentials.verify_password(account, "")
    assert account.password_hash != "N3w!Passw0rd"
    assert account.password_changed_at is not None


class CountingAccountStore(MemoryAccountStore):
    def __init__(self) -> None:
        super().__init__()
        self.saved: list[tuple[str, int]] = []

    async def save(self, account) -> None:
        self.saved.append((account.password_hash, account.password_reset_count))
        await super().save(account)


@pytest.mark.asyncio
async def test_password_reset_is_applied_in_one_save() -> None:
    store = CountingAccountStore()
    account = await credentials.create_account(
        store, Role.PATIENT, name="Alice", email="alice@example.com", password=STRONG_PASSWORD
    )
    account.password_reset_token = "legacy"
    store.saved.clear()

    await credentials.apply_password_reset(store, account, "N3w!Passw0rd")

    assert len(store.saved) == 1
    assert store.saved[0] == (account.password_hash, 1)
    assert credentials.verify_password(account, "N3w!Passw0rd")
    assert account.password_reset_used_at == account.password_changed_at
    assert account.password_reset_token is None
    assert account.password_reset_expires is None


@pytest.mark.asyncio
async def test_admin_role_and_creator_are_stored() -> None:
    store = MemoryAccountStore()
    creator = uuid.uuid4()
    admin = await credentials.create_account(
        store,
        Role.SUPER_ADMIN,
        name="Root",
        email="root@example.com",
        password=STRONG_PASSWORD,
        email_verified=True,
        created_by=creator,
    )
    assert admin.user_type is UserType.ADMIN
    assert admin.role is Role.SUPER_ADMIN
    assert admin.created_by == creator
    assert admin.email_verified_at is not None


@pytest.mark.asyncio
async def test_suspension_and_reactivation() -> None:
    store = MemoryAccountStore()
    account = await credentials.create_account(
        store, Role.DOCTOR, name="Dr House", email="house@example.com", password=STRONG_PASSWORD
    )
    admin_id = uuid.uuid4()

    await credentials.set_suspension(store, account, suspended=True, reason="Licence check", admin_id=admin_id)
    assert not account.is_active
    assert account.suspended_by == admin_id
    assert credentials.suspension_reason(account) == "Licence check"

    await credentials.set_suspension(store, account, suspended=False, reason=None, admin_id=admin_id)
    assert account.is_active
    assert account.suspended_by is None and account.suspension_reason is None


@pytest.mark.asyncio
async def test_admin_contact_falls_back_when_suspender_is_gone() -> None:
    store = MemoryAccountStore()
    account = await credentials.create_account(
        store, Role.DOCTOR, name="Dr House", email="house@example.com", password=STRONG_PASSWORD
    )
    await credentials.set_suspension(store, account, suspended=True, reason=None, admin_id=uuid.uuid4())

    contact = await credentials.admin_contact(
        store, account, fallback_name="Support", fallback_email="support@example.com"
    )
    assert contact == {"name": "Support", "email": "support@example.com"}
    assert credentials.suspension_reason(account) == "Your account has been suspended by an administrator."


@pytest.mark.asyncio
async def test_rejection_deactivates_account() -> None:
    store = MemoryAccountStore()
    account = await credentials.create_account(
        store, Role.DOCTOR, name="Dr Nick", email="nick@example.com", password=STRONG_PASSWORD
    )
    await credentials.set_verification_status(store, account, VerificationStatus.REJECTED, uuid.uuid4())
    assert account.verification_status is VerificationStatus.REJECTED
    assert not account.is_active


@pytest.mark.asyncio
async def test_profile_update_is_allow_listed() -> None:
    store = MemoryAccountStore()
    account = await credentials.create_account(
        store, Role.DOCTOR, name="Dr Nick", email="nick@example.com", password=STRONG_PASSWORD
    )
    await credentials.update_profile(store, account, {"specialization": "Surgery", "experience": 12})
    assert account.specialization == "Surgery"

    with pytest.raises(ValidationFailed):
        await credentials.update_profile(store, account, {"is_active": False})
    with pytest.raises(ValidationFailed):
        await credentials.update_profile(store, account, {"blood_group": "O+"})
    assert account.is_active


@pytest.mark.parametrize(
    ("user_agent", "expected"),
    [
        (None, {"browser": "Unknown", "os": "Unknown", "device": "Unknown"}),
        (
            "Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 Chrome/120.0 Mobile Safari/537.36",
            {"browser": "Chrome", "os": "Android", "device": "Mobile"},
        ),
        (
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_0) AppleWebKit/605.1.15 Version/17.0 Safari/605.1.15",
            {"browser": "Safari", "os": "macOS", "device": "Desktop"},
        ),
        (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/120.0 Safari/537.36 Edg/120.0",
            {"browser": "Edge", "os": "Windows", "device": "Desktop"},
        ),
    ],
)
def test_parse_user_agent(user_agent, expected) -> None:
    assert parse_user_agent(user_agent) == expected

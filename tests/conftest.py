import os

os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

from collections.abc import AsyncGenerator, Awaitable, Callable, Generator  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import event  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from careauth.auth import models  # noqa: E402,F401 - register tables with Base
from careauth.auth.constants import OTPPurpose, Role  # noqa: E402
from careauth.auth.locks import LocalKeyedLock  # noqa: E402
from careauth.auth.models import Account  # noqa: E402
from careauth.auth.service import AuthService  # noqa: E402
from careauth.auth.utils import RequestContext, configure_hashing  # noqa: E402
from careauth.config import Settings  # noqa: E402
from careauth.database import Base  # noqa: E402
from careauth.main import create_app  # noqa: E402
from careauth.storage.memory import MemoryStores  # noqa: E402

TEST_DATABASE_URL = "sqlite+aiosqlite://"
STRONG_PASSWORD = "Str0ng!Pw"
CHROME_ON_WINDOWS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0 Safari/537.36"
)


class FakeNotifier:
    """Records every message instead of sending it."""

    def __init__(self) -> None:
        self.otps: list[tuple[str, str, OTPPurpose]] = []
        self.welcomed: list[str] = []
        self.password_changed: list[str] = []
        self.deliver = True

    async def send_otp(self, email: str, name: str, code: str, purpose: OTPPurpose) -> bool:
        self.otps.append((email, code, purpose))
        return self.deliver

    async def send_welcome(self, email: str, name: str) -> bool:
        self.welcomed.append(email)
        return True

    async def send_password_changed(self, email: str, name: str) -> bool:
        self.password_changed.append(email)
        return True

    def last_code(self, email: str, purpose: OTPPurpose) -> str:
        for sent_to, code, sent_for in reversed(self.otps):
            if sent_to == email and sent_for is purpose:
                return code
        raise AssertionError(f"no {purpose.value} OTP sent to {email}")


def make_settings(**overrides) -> Settings:
    values = {
        "env_name": "test",
        "storage_backend": "memory",
        "jwt_secret": "test-secret",
        "password_hash_time_cost": 1,
        "session_maintenance_enabled": False,
        "redis_url": "",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture(autouse=True, scope="session")
def fast_hashing() -> None:
    configure_hashing(1)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def stores() -> MemoryStores:
    return MemoryStores()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def ctx() -> RequestContext:
    return RequestContext(ip_address="203.0.113.7", user_agent=CHROME_ON_WINDOWS)


@pytest.fixture
def service(stores: MemoryStores, settings: Settings, notifier: FakeNotifier) -> AuthService:
    return AuthService(stores, settings, notifier=notifier, locks=LocalKeyedLock())


@pytest.fixture
def verified_account(
    service: AuthService, notifier: FakeNotifier, ctx: RequestContext
) -> Callable[..., Awaitable[Account]]:
    """Factory: register an account and confirm its email."""

    async def _make(
        email: str = "alice@example.com",
        role: Role = Role.PATIENT,
        password: str = STRONG_PASSWORD,
        name: str = "Alice Patient",
    ) -> Account:
        result = await service.register(
            role=role, name=name, email=email, password=password, profile=None, ctx=ctx
        )
        await service.verify_otp(
            role=role,
            email=email,
            code=notifier.last_code(email, OTPPurpose.REGISTRATION),
            purpose=OTPPurpose.REGISTRATION,
            ctx=ctx,
        )
        return result.account

    return _make


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    engine = create_async_engine(TEST_DATABASE_URL, poolclass=StaticPool, echo=False)

    # pysqlite's own transaction handling breaks SAVEPOINT; let SQLAlchemy emit BEGIN.
    @event.listens_for(engine.sync_engine, "connect")
    def _no_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _explicit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        yield session
    await engine.dispose()


@pytest.fixture
def app_notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def client(app_notifier: FakeNotifier) -> Generator[TestClient, None, None]:
    app = create_app(
        make_settings(
            env_name="development",
            bootstrap_admin_email="root@healthconnect.com",
            bootstrap_admin_password="R00t!Admin",
            bootstrap_admin_name="Root Admin",
        ),
        notifier=app_notifier,
    )
    with TestClient(app) as c:
        yield c


def signup_and_login(
    client: TestClient,
    email: str,
    role: str = "patient",
    password: str = STRONG_PASSWORD,
    name: str = "Test User",
) -> dict:
    """Register, verify and log in through the API using the development OTP echo."""
    registered = client.post(
        "/api/v1/auth/register",
        json={"name": name, "email": email, "password": password, "role": role},
    )
    assert registered.status_code == 201, registered.text
    verified = client.post(
        "/api/v1/auth/verify-otp",
        json={"email": email, "otp": registered.json()["otp"], "role": role, "purpose": "registration"},
    )
    assert verified.status_code == 200, verified.text
    login = client.post("/api/v1/auth/login", json={"email": email, "password": password, "role": role})
    assert login.status_code == 200, login.text
    completed = client.post(
        "/api/v1/auth/verify-otp",
        json={"email": email, "otp": login.json()["otp"], "role": role, "purpose": "login"},
    )
    assert completed.status_code == 200, completed.text
    return completed.json()


def admin_token(client: TestClient) -> str:
    response = client.post(
        "/api/v1/auth/admin/login",
        json={"email": "root@healthconnect.com", "password": "R00t!Admin"},
    )
    assert response.status_code == 200, response.text
    return response.json()["token"]

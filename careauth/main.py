import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from slowapi.middleware import SlowAPIMiddleware

from careauth.admin.appointments import AppointmentCanceller, NoAppointments
from careauth.admin.bootstrap import bootstrap_admin
from careauth.admin.router import router as admin_router
from careauth.auth.locks import KeyedLock, LocalKeyedLock, RedisKeyedLock
from careauth.auth.router import router as auth_router
from careauth.auth.utils import configure_hashing
from careauth.config import Settings, get_settings
from careauth.database import dispose_db, init_db
from careauth.email.notifier import EmailNotifier, Notifier
from careauth.maintenance import run_maintenance
from careauth.middleware.errors import error_envelope_middleware, register_exception_handlers
from careauth.middleware.request_id import RequestIdFilter, request_id_middleware
from careauth.rate_limit import limiter
from careauth.redis_client import close_redis_client, get_redis_client
from careauth.sessions.router import router as sessions_router
from careauth.storage.memory import MemoryStores

logger = logging.getLogger(__name__)


# ── OpenAPI metadata ──────────────────────────────────────────────────────────

_DESCRIPTION = """
## HealthConnect Auth Service

Authentication and session management for the HealthConnect appointment platform:

* **Registration**: doctor and patient sign-up, confirmed by a 6-digit email OTP.
* **Login**: email + password, then an emailed OTP. Admins log in with a password only.
* **Single-device sessions**: a successful login ends every other session of the account.
* **Password reset**: by emailed OTP, once per account lifetime.
* **Audit**: every authentication event and admin action is logged for review.

### Authentication
Protected endpoints read the `token` HttpOnly cookie set at login, or
```
Authorization: Bearer <token>
```

### Error shape
```json
{ "success": false, "message": "...", "error": {"code": "...", "message": "..."}, "request_id": "..." }
```
"""

_TAGS_METADATA = [
    {
        "name": "auth",
        "description": "Registration, OTP verification, login / logout, profile and password flows.",
    },
    {
        "name": "sessions",
        "description": "List and revoke the caller's device sessions.",
    },
    {
        "name": "admin",
        "description": (
            "**Admin only.** Account verification and suspension, auth / admin audit "
            "logs, and admin provisioning."
        ),
    },
]


# ── Health schema ─────────────────────────────────────────────────────────────

class HealthResponse(BaseModel):
    status: str
    service: str


# ── App factory ───────────────────────────────────────────────────────────────

LOG_FORMAT = "%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s"


def _configure_logging(settings: Settings) -> None:
    logging.basicConfig(level=settings.log_level.upper(), format=LOG_FORMAT)
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, RequestIdFilter) for f in handler.filters):
            handler.addFilter(RequestIdFilter())


def _session_locks(settings: Settings) -> KeyedLock:
    if settings.redis_url:
        return RedisKeyedLock(get_redis_client(settings.redis_url))
    return LocalKeyedLock()


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    memory_stores = app.state.memory_stores
    if memory_stores is None:
        init_db(settings.database_url)
    await bootstrap_admin(settings, memory_stores)

    maintenance_task: asyncio.Task | None = None
    if settings.session_maintenance_enabled:
        maintenance_task = asyncio.create_task(run_maintenance(settings, memory_stores))
    try:
        yield
    finally:
        if maintenance_task is not None:
            maintenance_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await maintenance_task
        if memory_stores is None:
            await dispose_db()
        if settings.redis_url:
            await close_redis_client()


def create_app(
    settings: Settings | None = None,
    *,
    notifier: Notifier | None = None,
    appointments: AppointmentCanceller | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    _configure_logging(settings)
    configure_hashing(settings.password_hash_time_cost)

    app = FastAPI(
        title=f"{settings.app_name} Auth Service",
        version="1.0.0",
        description=_DESCRIPTION,
        openapi_tags=_TAGS_METADATA,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.memory_stores = MemoryStores() if settings.storage_backend == "memory" else None
    app.state.notifier = notifier or EmailNotifier(settings)
    app.state.session_locks = _session_locks(settings)
    app.state.appointments = appointments or NoAppointments()

    # Attach rate limiter state before middleware
    app.state.limiter = limiter
    register_exception_handlers(app)

    # Middleware is applied in reverse-registration order (last added = outermost).
    # CORS must be outermost so ALL responses (including 429s) carry CORS headers.
    app.add_middleware(SlowAPIMiddleware)
    app.middleware("http")(request_id_middleware)
    app.middleware("http")(error_envelope_middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=600,
    )

    app.include_router(auth_router, prefix="/api/v1")
    app.include_router(sessions_router, prefix="/api/v1")
    app.include_router(admin_router, prefix="/api/v1")

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    async def health() -> HealthResponse:
        return HealthResponse(status="ok", service="careauth")

    return app


app = create_app()

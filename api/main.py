"""
api/main.py -- FastAPI application entry point for the accounts API.

Run with:      uvicorn api.main:app --reload
               python main.py serve

Middleware stack (outermost to innermost):
  1. CORSMiddleware     -- adds CORS headers for allowed browser origins
  2. SlowAPIMiddleware  -- enforces per-route rate limits from api.limiter

Lifespan is the composition root: it reads Settings (failing fast when
SECRET_KEY is missing), builds the store and the services, hangs them on
app.state, and starts the revoked-token purge task. Shutdown cancels the
task, waits for it to finish, then disposes the engine.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.errors import envelope, error_response
from api.limiter import limiter
from api.models import HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.users import router as users_router
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import TokenService
from core.config import Settings, get_settings
from core.errors import AccountsError
from users.policy import ValidationPolicy
from users.service import UserService

API_VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("useraccounts.api")

# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------


def wire_services(app: FastAPI, settings: Settings, user_store: UserStore) -> None:
    """Build the services from settings and attach everything to app.state.

    Shared by the real lifespan and the test lifespan so both wire the app
    identically.
    """
    tokens = TokenService(settings.secret_key, settings.token_expire_seconds)
    app.state.settings = settings
    app.state.user_store = user_store
    app.state.auth_service = AuthService(user_store, tokens, bcrypt_rounds=settings.bcrypt_rounds)
    app.state.user_service = UserService(
        user_store,
        ValidationPolicy.from_settings(settings),
        bcrypt_rounds=settings.bcrypt_rounds,
    )


# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI, interval_seconds: int) -> None:
    """Purge revoked tokens whose own expiry has passed, every interval_seconds.

    The purge runs in a worker thread so the DELETE never blocks the event
    loop. CancelledError from task.cancel() during shutdown propagates out of
    asyncio.sleep and unwinds the coroutine cleanly. A failed purge is logged
    and retried on the next tick.
    """
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            removed = await asyncio.to_thread(app.state.user_store.purge_expired_revoked_tokens)
        except AccountsError:
            logger.warning("Revoked-token purge failed; will retry in %ds", interval_seconds)
            continue
        if removed:
            logger.info("Purged %d expired revoked tokens", removed)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the store and services at startup; tear them down at shutdown.

    get_settings() raises when SECRET_KEY is missing or empty, so a
    misconfigured process dies here, before it accepts any request.
    """
    settings = get_settings()
    if settings.debug:
        logging.getLogger("useraccounts").setLevel(logging.DEBUG)
    logger.info("Accounts API starting up")
    wire_services(app, settings, UserStore(settings.database_url))
    logger.info("Store initialized")
    app.state.purge_task = asyncio.create_task(_purge_loop(app, settings.revoked_purge_interval_seconds))

    yield

    # Shutdown: let a purge in flight unwind before the engine is disposed.
    app.state.purge_task.cancel()
    with suppress(asyncio.CancelledError):
        await app.state.purge_task
    app.state.user_store.close()
    logger.info("Accounts API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="User Accounts API",
    description="User account management with HMAC-signed bearer tokens and logout revocation.",
    version=API_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost", "http://localhost:3000", "http://127.0.0.1"],
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPIMiddleware reads the limiter from app.state.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """One access-log line per request: method, path, status, latency, client."""
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    client = request.client.host if request.client else "-"
    logger.info(
        "%s %s -> %d in %.1fms from %s", request.method, request.url.path, response.status_code, elapsed_ms, client
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(users_router, prefix="/api/v1", tags=["Users"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every error, domain or framework, leaves as the {"error": {...}} envelope.
# ---------------------------------------------------------------------------


@app.exception_handler(AccountsError)
async def accounts_error_handler(request: Request, exc: AccountsError) -> JSONResponse:
    """Map the domain error taxonomy onto HTTP.

    5xx errors (storage, hashing, signing) are logged with their traceback;
    4xx errors are the client's problem and only logged at debug level.
    """
    if exc.status_code >= 500:
        logger.error(
            "%s on %s %s",
            exc.__class__.__name__,
            request.method,
            request.url.path,
            exc_info=exc,
        )
    else:
        logger.debug("%s on %s %s: %s", exc.__class__.__name__, request.method, request.url.path, exc)
    return error_response(exc)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """429 for too many login attempts from one address; Retry-After says when to come back."""
    logger.warning("Login rate limit hit from %s", request.client.host if request.client else "unknown")
    wait = int(getattr(exc, "retry_after", 60))
    return envelope(
        429,
        "rate_limited",
        "Too many login attempts.",
        detail=str(exc),
        headers={"Retry-After": str(wait)},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Malformed input, caught before any account rule runs.
    return envelope(422, "validation_error", "Invalid request parameters.", detail=str(exc.errors()))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Router-level errors: unknown path (404), wrong method (405) and the like.

    Registered on the Starlette base class, which the router raises directly
    and fastapi.HTTPException extends.
    """
    return envelope(exc.status_code, f"http_{exc.status_code}", str(exc.detail), headers=getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """500 for anything outside AccountsError. The traceback goes to the log only."""
    logger.exception("Unhandled %s on %s %s", type(exc).__name__, request.method, request.url.path)
    return envelope(500, "internal_error", "Internal server error.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# No rate limit and no auth -- load balancers must always reach it.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version and database reachability."""
    store: UserStore = request.app.state.user_store
    database = "ok" if store.ping() else "error"
    return HealthResponse(
        status="healthy" if database == "ok" else "degraded",
        version=API_VERSION,
        components={"app": "ok", "database": database},
    )

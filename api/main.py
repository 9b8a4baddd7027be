"""
api/main.py -- FastAPI application entry point for the supplier gate.

Run with:      uvicorn asgi:app --reload
               python main.py serve

Middleware stack (outermost to innermost):
  1. log_requests          -- one access log line per request, rejected ones included
  2. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  3. CORSMiddleware        -- adds CORS headers for allowed browser origins;
                              credentials allowed because the session is a cookie
  4. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan builds the object graph once and parks it on app.state:
  identities       IdentityStore        (owns the engine)
  suppliers        SupplierStore        (shares the engine)
  mailer           BrevoMailer or LogMailer
  dispatcher       NotificationDispatcher (worker task on this loop)
  lifecycle        SupplierLifecycle
  document_access  DocumentAccess
Shutdown tears it down in reverse.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.admin import router as admin_router
from api.routes.v1.auth import router as auth_router
from api.routes.v1.suppliers import router as suppliers_router
from auth.dependencies import require_staff
from auth.store import IdentityStore
from core.config import get_settings
from core.errors import GateError
from notifications.dispatcher import NotificationDispatcher
from notifications.mailer import mailer_from_settings
from suppliers.access import DocumentAccess
from suppliers.lifecycle import SupplierLifecycle
from suppliers.store import SupplierStore

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("suppliergate.api")

_settings = get_settings()
if _settings.debug:
    logging.getLogger("suppliergate").setLevel(logging.DEBUG)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


def wire_services(app: FastAPI, identities: IdentityStore, dispatcher: NotificationDispatcher) -> None:
    """Attach the stores and services built on top of identities to app.state."""
    suppliers = SupplierStore(identities)
    app.state.identities = identities
    app.state.suppliers = suppliers
    app.state.dispatcher = dispatcher
    app.state.lifecycle = SupplierLifecycle(identities, suppliers, dispatcher)
    app.state.document_access = DocumentAccess(suppliers, base_url=_settings.base_url)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the stores and start the notification worker; undo both on exit.

    The dispatcher is started here, inside the server's event loop, because
    its queue and worker task belong to that loop.
    """
    logger.info("Supplier gate API starting up")
    identities = IdentityStore(_settings.database_url)
    mailer = mailer_from_settings(_settings)
    dispatcher = NotificationDispatcher(
        mailer,
        max_attempts=_settings.notify_max_attempts,
        backoff_seconds=_settings.notify_backoff_seconds,
    )
    dispatcher.start()
    app.state.mailer = mailer
    wire_services(app, identities, dispatcher)
    logger.info("Stores initialized (%s)", identities.engine.url.render_as_string(hide_password=True))

    yield

    await dispatcher.stop()
    mailer.close()
    identities.close()
    logger.info("Supplier gate API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Supplier Gate API",
    description="Supplier onboarding: applications, review and scoped document access.",
    version=__version__,
    lifespan=lifespan,
    docs_url=None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Starlette makes the most recently added middleware the outermost, so
# registration runs innermost-first: SlowAPI -> CORS -> TrustedHost, and the
# @app.middleware logger below ends up wrapping all three.
# ---------------------------------------------------------------------------

app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type"],
    max_age=3600,
)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(suppliers_router, prefix="/api/v1", tags=["Suppliers"])
app.include_router(admin_router, prefix="/api/v1", tags=["Admin"])


# ---------------------------------------------------------------------------
# API documentation, staff only
# ---------------------------------------------------------------------------


@app.get("/docs", include_in_schema=False, dependencies=[Depends(require_staff)])
async def docs():
    return get_swagger_ui_html(openapi_url="/openapi.json", title="Supplier Gate API")


@app.get("/redoc", include_in_schema=False, dependencies=[Depends(require_staff)])
async def redoc():
    return get_redoc_html(openapi_url="/openapi.json", title="Supplier Gate API")


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error_response(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


@app.exception_handler(GateError)
async def gate_error_handler(request: Request, exc: GateError) -> JSONResponse:
    """Render domain errors raised anywhere below the routes."""
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    else:
        logger.debug("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    response = _error_response(exc.status_code, exc.code, exc.message, exc.detail)
    if exc.status_code in (401, 403):
        response.headers["Cache-Control"] = "no-store"
    return response


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error_response(429, "rate_limited", "Too many requests.", str(exc))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error_response(422, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint -- no rate limit, no auth
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version and a database reachability check."""
    identities: IdentityStore = request.app.state.identities
    db_ok = identities.ping()
    worker_ok = request.app.state.dispatcher.running
    return HealthResponse(
        status="healthy" if db_ok else "degraded",
        version=__version__,
        components={
            "database": "ok" if db_ok else "unavailable",
            "notifications": "ok" if worker_ok else "stopped",
        },
    )

"""
api/main.py -- FastAPI application entry point for GymCoach.

Run with:  uvicorn asgi:app --reload
           python main.py serve

Settings are loaded at import time. A missing or placeholder SECRET_KEY raises
ConfigurationError here, so the process refuses to start instead of serving
with an insecure signing key.

Middleware stack (outermost to innermost):
  1. security_headers      -- CSP, HSTS, nosniff, frame and referrer policy
  2. log_requests          -- one log line per request with latency
  3. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  4. CORSMiddleware        -- credentialed CORS for the configured frontend origins
  5. SlowAPIMiddleware     -- global and per-route rate limits from api.limiter

Lifespan builds the account store, session issuer, and generation client on
startup and closes them on shutdown.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.auth import router as auth_router
from api.routes.generation import router as generation_router
from auth.store import DEFAULT_DB_URL, AccountStore
from auth.tokens import get_session_issuer
from core.config import get_settings
from core.errors import DuplicateIdentity, InvalidToken, Unauthenticated, UpstreamUnavailable, ValidationError
from core.generation import GenerationClient

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("gymcoach.api")

_settings = get_settings()

CONTENT_SECURITY_POLICY = "; ".join(
    [
        "default-src 'self'",
        "script-src 'self' 'unsafe-inline' https://www.gstatic.com https://cdn.jsdelivr.net",
        "style-src 'self' 'unsafe-inline' https://fonts.googleapis.com",
        "font-src 'self' https://fonts.gstatic.com",
        "img-src 'self' data: https:",
        "connect-src 'self' https://generativelanguage.googleapis.com",
        "frame-ancestors 'none'",
        "base-uri 'self'",
        "object-src 'none'",
    ]
)

# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Everything before yield runs on startup; everything after yield runs on
    shutdown. The session issuer is built here so a bad secret fails startup,
    never an individual request.
    """
    logger.info("GymCoach API starting up")
    app.state.sessions = get_session_issuer()
    app.state.accounts = AccountStore(
        db_url=_settings.database_url or DEFAULT_DB_URL,
        bcrypt_rounds=_settings.bcrypt_rounds,
    )
    logger.info("Account store initialized (%d accounts)", app.state.accounts.count_accounts())
    if _settings.gemini_api_key:
        app.state.generator = GenerationClient(
            api_key=_settings.gemini_api_key,
            model=_settings.generation_model,
            timeout=_settings.generation_timeout_seconds,
            base_url=_settings.generation_base_url,
        )
        logger.info("Generation client initialized (model=%s)", _settings.generation_model)
    else:
        app.state.generator = None

    yield

    if app.state.generator is not None:
        app.state.generator.close()
    app.state.accounts.close()
    logger.info("GymCoach API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="GymCoach API",
    description="Accounts, sessions, and AI fitness guidance.",
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs" if _settings.debug else None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# add_middleware() inserts at the front of the stack, so the LAST registration
# is the outermost layer. Registered innermost-first: SlowAPI -> CORS -> TrustedHost.
# ---------------------------------------------------------------------------

app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Cookie"],
    max_age=3600,
)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.trusted_hosts)

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


@app.middleware("http")
async def security_headers(request: Request, call_next):
    """Attach browser security headers to every response, errors included."""
    response = await call_next(request)
    response.headers.setdefault("Content-Security-Policy", CONTENT_SECURITY_POLICY)
    response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains; preload")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api", tags=["Auth"])
app.include_router(generation_router, tags=["Generation"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str, detail=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


@app.exception_handler(ValidationError)
async def domain_validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Return 400 listing every violated field constraint."""
    return _error(400, "validation_error", "Validation failed.", [e.to_dict() for e in exc.errors])


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 with field-level detail when the body is missing fields or mistyped."""
    detail = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        detail.append({"field": ".".join(loc) or "body", "message": err.get("msg", "Invalid value.")})
    return _error(400, "validation_error", "Validation failed.", detail)


@app.exception_handler(DuplicateIdentity)
async def duplicate_identity_handler(request: Request, exc: DuplicateIdentity) -> JSONResponse:
    return _error(409, "duplicate_email", "Email already in use.")


@app.exception_handler(Unauthenticated)
async def unauthenticated_handler(request: Request, exc: Unauthenticated) -> JSONResponse:
    return _error(401, "unauthenticated", "Not authenticated.")


@app.exception_handler(InvalidToken)
async def invalid_token_handler(request: Request, exc: InvalidToken) -> JSONResponse:
    """Same message for every failure reason; the reason only goes to the log."""
    logger.info("Rejected session token on %s (%s)", request.url.path, exc.reason)
    return _error(401, "invalid_token", "Invalid token.")


@app.exception_handler(UpstreamUnavailable)
async def upstream_unavailable_handler(request: Request, exc: UpstreamUnavailable) -> JSONResponse:
    return _error(503, "upstream_unavailable", "AI service temporarily unavailable.")


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded.

    Retry-After tells clients exactly how many seconds to wait before retrying.
    """
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "rate_limited", "Too many requests.", str(exc))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    Route handlers raise HTTPException with a {"code", "message"} dict as
    detail. When detail is already a structured dict, use it directly as the
    error field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Exempt from rate limiting -- health checks from load balancers and
# monitoring systems must not be throttled.
# ---------------------------------------------------------------------------


@limiter.exempt
@app.get("/api/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version, and per-component status."""
    components = {"app": "ok", "generation": "ok" if request.app.state.generator else "disabled"}
    try:
        components["database"] = "ok" if request.app.state.accounts.ping() else "error"
    except SQLAlchemyError:
        logger.exception("Health check database ping failed")
        components["database"] = "error"
    return HealthResponse(version=VERSION, components=components)

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, TimeoutError as SA_TimeoutError
from starlette.exceptions import HTTPException as StarletteHTTPException
import asyncio
import logging
import os
import time

from .core.config import settings
from .core.observability import setup_logging, setup_tracer
from .database import Base, engine, get_db_session
from .middleware.security_headers import SecurityHeadersMiddleware
from .models import utcnow
from .realtime import bus
from .realtime.manager import ensure_bus_started
from .services.escrow import process_auto_release
from .utils.notifications import set_main_loop
from .utils.redis_cache import close_redis_client
from .utils.status_logger import register_status_listeners
from .api import (
    api_admin,
    api_booking,
    api_earnings,
    api_escrow,
    api_geocode,
    api_notification_prefs,
    api_notifications,
    api_social,
    api_tracking,
    api_wallet,
)

setup_logging()
logger = logging.getLogger(__name__)

_BOOT_TS = time.time()

# Always use ORJSONResponse for JSON payloads to ensure consistent, fast
# serialization across all endpoints.
app = FastAPI(title="AmplyGigs API", default_response_class=ORJSONResponse)
setup_tracer(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.CORS_ALLOW_ALL else settings.CORS_ORIGINS,
    allow_credentials=not settings.CORS_ALLOW_ALL,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Total-Count", "Content-Range"],
)
logger.info("CORS origins set to: %s", settings.CORS_ORIGINS)
app.add_middleware(SecurityHeadersMiddleware)


def _error_body(detail) -> dict:
    if isinstance(detail, dict):
        message = detail.get("message") or "Request failed"
    else:
        message = str(detail)
    return {"success": False, "error": message, "detail": detail}


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render every HTTP error as ``{success: false, error, detail}``."""
    if exc.status_code >= 500:
        logger.error("HTTP error %s at %s: %s", exc.status_code, request.url.path, exc.detail)
    return ORJSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.detail),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Return validation errors keyed by field so forms can highlight them."""
    errors = exc.errors()
    logger.warning("Validation error at %s: %s", request.url.path, errors)
    field_errors = {}
    for err in errors:
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        field_errors[".".join(loc) or "request"] = err.get("msg", "invalid")
    return ORJSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_error_body({"message": "Invalid request", "field_errors": field_errors}),
    )


@app.middleware("http")
async def catch_exceptions(request: Request, call_next):
    """Turn anything that escaped the handlers into a JSON 500/503."""
    try:
        return await call_next(request)
    except SA_TimeoutError as exc:
        logger.error("DB timeout at %s: %s", request.url.path, str(exc))
        return ORJSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=_error_body("Database busy, please retry"),
        )
    except Exception as exc:
        logger.exception("Unhandled error: %s", exc)
        return ORJSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body("Internal Server Error"),
        )


def _db_ping_sync() -> float:
    """Synchronous DB ping; must not run on the event loop."""
    t0 = time.perf_counter()
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return (time.perf_counter() - t0) * 1000.0


@app.get("/healthz/live", tags=["health"])
async def health_live():
    """Liveness probe: process can respond; does not touch the DB."""
    return {"success": True, "status": "ok", "uptime_s": round(time.time() - _BOOT_TS, 1), "pid": os.getpid()}


@app.get("/healthz/ready", tags=["health"])
async def health_ready():
    """Readiness probe: a DB round trip within one second."""
    try:
        ping_ms = await asyncio.wait_for(asyncio.to_thread(_db_ping_sync), timeout=1.0)
    except asyncio.TimeoutError:
        return ORJSONResponse(
            status_code=503,
            content={"success": False, "status": "error", "error": "db_timeout"},
            headers={"Cache-Control": "no-store"},
        )
    except OperationalError as exc:
        return ORJSONResponse(
            status_code=503,
            content={"success": False, "status": "error", "error": "db_error", "detail": str(exc)},
            headers={"Cache-Control": "no-store"},
        )
    return ORJSONResponse(
        content={"success": True, "status": "ok", "db_ping_ms": round(ping_ms, 2)},
        headers={"Cache-Control": "no-store"},
    )


api_prefix = settings.API_V1_STR  # usually "/api/v1"

app.include_router(api_booking.router, prefix=api_prefix)
app.include_router(api_wallet.router, prefix=api_prefix)
app.include_router(api_escrow.router, prefix=api_prefix)
app.include_router(api_earnings.router, prefix=api_prefix)
app.include_router(api_tracking.router, prefix=api_prefix)
app.include_router(api_notification_prefs.router, prefix=api_prefix)
app.include_router(api_notifications.router, prefix=api_prefix)
app.include_router(api_social.router, prefix=api_prefix)
app.include_router(api_geocode.router, prefix=api_prefix)
app.include_router(api_admin.router, prefix=api_prefix)


def process_escrow_auto_release() -> dict:
    with get_db_session() as db:
        return process_auto_release(db, utcnow())


async def escrow_auto_release_loop() -> None:
    """Release escrows whose review window has elapsed, once per interval."""
    while True:
        await asyncio.sleep(settings.ESCROW_AUTO_RELEASE_INTERVAL_SECONDS)
        # Retry with backoff on transient DB failures
        delay = 5
        max_retries = 5
        for attempt in range(max_retries):
            try:
                await asyncio.to_thread(process_escrow_auto_release)
                break
            except OperationalError as exc:  # pragma: no cover - transient DB outage
                logger.warning("Escrow auto-release attempt %s failed: %s", attempt + 1, exc)
                if attempt < max_retries - 1:
                    await asyncio.sleep(delay)
                    delay = min(delay * 2, 60)
                    continue
                # Give up for this cycle; try again next tick
                break
            except Exception:  # pragma: no cover - keep the scheduler alive
                logger.exception("Escrow auto-release failed")
                break


def _schedulers_enabled() -> bool:
    return settings.ENABLE_SCHEDULERS and os.getenv("PYTEST_RUN") != "1"


@app.on_event("startup")
async def on_startup() -> None:
    if engine.url.get_backend_name() == "sqlite":
        Base.metadata.create_all(bind=engine)
    register_status_listeners()
    set_main_loop(asyncio.get_running_loop())
    await ensure_bus_started()
    if _schedulers_enabled():
        asyncio.create_task(escrow_auto_release_loop())


@app.on_event("shutdown")
async def on_shutdown() -> None:
    """Close Redis connections when the application shuts down."""
    logger.info("Closing Redis client")
    close_redis_client()
    await bus.stop_pattern_consumer()
    set_main_loop(None)


@app.get("/")
async def root():
    return {"success": True, "message": "Welcome to AmplyGigs API"}

# backend/app/main.py

import logging
import os
import time

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.exc import TimeoutError as SA_TimeoutError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .api import (
    api_admin,
    api_assignments,
    api_booking,
    api_dispatch,
    api_driver,
    api_quote,
)
from .core.config import settings
from .core.observability import setup_logging
from .database import Base, engine
from .db_utils import (
    ensure_booking_geo_columns,
    ensure_booking_lifecycle_columns,
    seed_reference_data,
)
from .utils import background_worker
from .utils.redis_cache import close_redis_client

setup_logging()
logger = logging.getLogger(__name__)

_BOOT_TS = time.time()

# Tables are created here; reference data is seeded on startup
Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="Pickup Operations API",
    default_response_class=ORJSONResponse,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials="*" not in settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Retry-After"],
)
logger.info("CORS origins set to: %s", settings.CORS_ORIGINS)


@app.middleware("http")
async def catch_exceptions(request: Request, call_next):
    """Return JSON responses for unexpected errors and log them."""
    try:
        response = await call_next(request)
    except StarletteHTTPException as exc:
        logger.error("HTTP error %s at %s: %s", exc.status_code, request.url.path, exc.detail)
        response = ORJSONResponse(status_code=exc.status_code, content={"detail": exc.detail})
    except SA_TimeoutError as exc:  # DB pool timeout -> 503 to reduce retry storms
        logger.error("DB timeout at %s: %s", request.url.path, str(exc))
        response = ORJSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Database busy, please retry"},
        )
    except Exception as exc:  # pragma: no cover - generic handler
        logger.exception("Unhandled error: %s", exc)
        response = ORJSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal Server Error"},
        )
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report schema violations as 400 with per-field messages."""
    errors = exc.errors()
    logger.warning("Validation error at %s: %s", request.url.path, errors)
    field_errors = {}
    for err in errors:
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        field_errors[".".join(loc) or "body"] = err.get("msg", "invalid")
    return ORJSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": {"message": "Invalid request", "field_errors": field_errors}},
    )


@app.get("/healthz", tags=["health"])
def healthz():
    """Liveness plus a cheap DB ping."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        db_ok = True
    except SQLAlchemyError as exc:
        logger.warning("Health check DB ping failed: %s", exc)
        db_ok = False
    return ORJSONResponse(
        status_code=status.HTTP_200_OK if db_ok else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ok" if db_ok else "error",
            "db": db_ok,
            "uptime_s": round(time.time() - _BOOT_TS, 1),
            "pid": os.getpid(),
        },
        headers={"Cache-Control": "no-store"},
    )


api_prefix = settings.API_V1_STR  # usually "/api/v1"

app.include_router(api_quote.router, prefix=f"{api_prefix}", tags=["quote"])
app.include_router(api_booking.router, prefix=f"{api_prefix}/bookings", tags=["bookings"])
app.include_router(api_driver.router, prefix=f"{api_prefix}/driver", tags=["driver"])
app.include_router(api_admin.router, prefix=f"{api_prefix}/admin", tags=["admin"])
app.include_router(api_dispatch.router, prefix=f"{api_prefix}/admin", tags=["dispatch"])
app.include_router(api_assignments.router, prefix=f"{api_prefix}/admin", tags=["assignments"])


@app.on_event("startup")
def prepare_reference_data() -> None:
    """Bring older databases up to date and seed default pricing tables."""
    ensure_booking_geo_columns(engine)
    ensure_booking_lifecycle_columns(engine)
    if settings.SEED_REFERENCE_DATA:
        seed_reference_data(engine)


@app.on_event("shutdown")
def shutdown_clients() -> None:
    """Close Redis connections and stop the background worker."""
    logger.info("Closing Redis client")
    close_redis_client()
    background_worker.shutdown()

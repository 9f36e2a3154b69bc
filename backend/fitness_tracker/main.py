"""FastAPI application entry point for the Fitness Tracker API."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from fitness_tracker import __version__
from fitness_tracker.config import get_settings
from fitness_tracker.database import create_tables
from fitness_tracker.exceptions import TrackerError
from fitness_tracker.routers import analysis, billing, workouts
from fitness_tracker.services.billing_service import (
    BillingService,
    billing_service,
    get_billing_service,
)

settings = get_settings()

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    """Apply LOG_LEVEL to the root logger."""
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    configure_logging()
    logger.info(f"Workout store backend: {settings.WORKOUT_STORE_BACKEND}")
    if not settings.STRIPE_WEBHOOK_SECRET:
        logger.warning("STRIPE_WEBHOOK_SECRET is not set; all webhooks will be rejected")
    if not settings.ANALYSIS_WEBHOOK_URL:
        logger.warning("ANALYSIS_WEBHOOK_URL is not set; analysis requests will fail")

    # Startup: Create database tables and log whether Stripe is reachable
    create_tables()
    if settings.STRIPE_CHECK_ON_STARTUP:
        billing_service.check_connection()
    yield


app = FastAPI(
    title="Fitness Tracker API",
    description="Backend API for the Fitness Tracker - workouts, subscriptions and notes analysis",
    version=__version__,
    lifespan=lifespan,
)

# Configured origins plus any Vercel preview deployment
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_origin_regex=settings.ALLOWED_ORIGIN_REGEX or None,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.exception_handler(TrackerError)
async def tracker_error_handler(request: Request, exc: TrackerError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    missing = [
        ".".join(str(part) for part in err["loc"][1:])
        for err in errors
        if err["type"] == "missing"
    ]

    if missing and all(missing):
        message = f"Missing required fields: {', '.join(missing)}"
    elif missing:
        message = "Request body is required"
    else:
        first = errors[0]
        location = ".".join(str(part) for part in first["loc"][1:]) or "body"
        message = f"Invalid value for {location}: {first['msg']}"

    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )


# Include routers
app.include_router(billing.router, tags=["Subscriptions"])
app.include_router(workouts.router, prefix="/api/workouts", tags=["Workouts"])
app.include_router(analysis.router, prefix="/api", tags=["Analysis"])


@app.get("/", tags=["Health"])
async def root():
    """Root endpoint - API information."""
    return {
        "name": "Fitness Tracker API",
        "version": __version__,
        "status": "running",
    }


@app.get("/health", tags=["Health"])
@app.get("/api/health", tags=["Health"])
def health_check(billing: BillingService = Depends(get_billing_service)):
    """Liveness plus a fresh Stripe connectivity check."""
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "stripe": billing.check_connection(),
    }

"""
ClimbApp Backend — FastAPI Application Factory
==============================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() registers middleware, exception handlers and routers;
       the lifespan configures logging and releases the database pool.
Who:   Served by uvicorn (uvicorn climbapp.main:app).

Application Architecture:
    ┌──────────────────────────────────────────────────────────────┐
    │                        FastAPI App                           │
    │                                                              │
    │  Middleware: Rate Limit → Request ID → Logging → GZip → CORS │
    │                                                              │
    │  Routes:                                                     │
    │    /api/v1/sites               /api/v1/sites/{id}/routes     │
    │    /api/v1/query               /api/v1/target-sets, targets  │
    │    /health                                                   │
    │                                                              │
    │  Exception Handlers:                                         │
    │    Validation→400  NotFound→404  ImageRecognition→503        │
    │    CircuitOpen→503 Database→500  Unexpected→500              │
    └──────────────────────────────────────────────────────────────┘
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from climbapp import __version__
from climbapp.config import settings
from climbapp.database import dispose_engine
from climbapp.exceptions import (
    ClimbingAppError,
    CircuitBreakerOpenError,
    DatabaseError,
    ImageRecognitionError,
    NotFoundError,
    ValidationError,
)
from climbapp.middleware.logging import RequestLoggingMiddleware
from climbapp.middleware.rate_limit import RateLimitMiddleware
from climbapp.middleware.request_id import RequestIDMiddleware, request_id_var
from climbapp.routes import climbing_routes, health, query, sites, targets

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure the root logger once for the whole process.

    Format: 2024-01-15T12:00:00 [INFO] climbapp.services.query_service: ...
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Third-party libraries that log every call at DEBUG/INFO
    for noisy in (
        "uvicorn.access",
        "sqlalchemy.engine",
        "google",
        "google.auth",
        "grpc",
        "urllib3",
    ):
        logging.getLogger(noisy).setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("ClimbApp Backend %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Catalog CRUD still works without Google Cloud; keep serving
        logger.error("Configuration error: %s", str(e))

    logger.info(
        "Image recognition: project=%s region=%s product_set=%s bucket=%s",
        settings.gcp_project_id,
        settings.gcp_compute_region,
        settings.product_set_id,
        settings.reference_image_bucket,
    )
    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("ClimbApp Backend shutting down...")
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_response(
    status_code: int,
    error: str,
    message: str,
    details=None,
    headers=None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "message": message,
            "details": details,
            "request_id": request_id_var.get("") or None,
        },
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map the exception hierarchy onto HTTP responses.

    Handler hierarchy:
        RequestValidationError  → 400 (invalid body, path or query)
        ValidationError         → 400
        NotFoundError           → 404
        CircuitBreakerOpenError → 503 + Retry-After
        ImageRecognitionError   → 503 (+ Retry-After when known)
        DatabaseError           → 500, generic message
        ClimbingAppError (base) → 500
        Exception (fallback)    → 500, generic message

    Responses never contain stack traces or SQL; those are logged.
    """

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(request: Request, exc: RequestValidationError):
        errors = [
            {
                "field": ".".join(str(part) for part in error.get("loc", ())),
                "message": error.get("msg", ""),
            }
            for error in exc.errors()
        ]
        logger.warning(
            "[%s] Invalid request to %s: %s",
            request_id_var.get(""),
            request.url.path,
            errors,
        )
        return _error_response(
            400,
            "validation_error",
            "The request is invalid.",
            details={"errors": errors},
        )

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        return _error_response(400, "validation_error", exc.message, details=exc.context)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return _error_response(
            404,
            "not_found",
            exc.message,
            details={"resource": exc.resource, "resource_id": exc.resource_id},
        )

    @app.exception_handler(CircuitBreakerOpenError)
    async def handle_circuit_breaker(request: Request, exc: CircuitBreakerOpenError):
        logger.warning("[%s] Circuit breaker open: %s", request_id_var.get(""), exc.message)
        return _error_response(
            503,
            "service_unavailable",
            exc.message,
            details={"recovery_time": exc.recovery_time},
            headers={"Retry-After": str(exc.recovery_time)},
        )

    @app.exception_handler(ImageRecognitionError)
    async def handle_image_recognition_error(request: Request, exc: ImageRecognitionError):
        logger.error("[%s] Image recognition error: %s", request_id_var.get(""), exc.message)
        headers = {}
        if exc.retry_after:
            headers["Retry-After"] = str(exc.retry_after)
        return _error_response(
            503,
            "image_recognition_error",
            exc.message,
            details=exc.context,
            headers=headers,
        )

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        logger.error(
            "[%s] Database error: %s | Context: %s",
            request_id_var.get(""),
            exc.message,
            exc.context,
        )
        return _error_response(
            500,
            "server_error",
            "An internal error occurred. Please try again later.",
        )

    @app.exception_handler(ClimbingAppError)
    async def handle_application_error(request: Request, exc: ClimbingAppError):
        logger.error(
            "[%s] %s: %s | Context: %s",
            request_id_var.get(""),
            type(exc).__name__,
            exc.message,
            exc.context,
        )
        return _error_response(500, "server_error", exc.message)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error(
            "[%s] Unexpected error: %s",
            request_id_var.get(""),
            str(exc),
            exc_info=True,
        )
        return _error_response(
            500,
            "internal_server_error",
            "An unexpected error occurred. Please try again or contact support.",
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    """
    Assemble the application.

    Middleware executes in REVERSE order of addition: the rate limiter,
    added last, sees every request first.
    """
    app = FastAPI(
        title="ClimbApp API",
        description=(
            "Catalog of climbing sites and routes with photo-based route "
            "identification through Google Cloud Vision Product Search."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Browsers reject credentialed CORS responses for a wildcard origin
    origins = settings.cors_origins_list
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials="*" not in origins,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[
            "Location",
            "X-Request-ID",
            "X-Total-Count",
            "Retry-After",
        ],
    )

    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware)

    register_exception_handlers(app)

    app.include_router(sites.router)
    app.include_router(climbing_routes.router)
    app.include_router(query.router)
    app.include_router(targets.router)
    app.include_router(health.router)

    return app


# ── Application Instance ─────────────────────────────────────────────────
app = create_app()

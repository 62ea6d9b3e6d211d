# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI Application Factory.

This module provides the main application factory for the CourseDesk API
and the single table that maps enrollment rejections to HTTP statuses.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from coursedesk import __version__
from coursedesk.api.dependencies import close_db, init_db
from coursedesk.api.middleware.auth import AuthMiddleware
from coursedesk.api.routes import health
from coursedesk.api.v1 import router as v1_router
from coursedesk.core.config import get_settings
from coursedesk.domains.audit import AuditLogWriter, EventBusAuditSink
from coursedesk.domains.enrollment.errors import (
    EnrollmentLedgerError,
    EnrollmentValidationError,
    LedgerStorageError,
    RejectionReason,
    TransactionTimeoutError,
)
from coursedesk.infrastructure.database.connection import (
    DatabaseError,
    get_sessionmaker,
    is_timeout_error,
)
from coursedesk.infrastructure.events import get_event_bus, reset_event_bus
from coursedesk.utils.logging import setup_logging

logger = logging.getLogger(__name__)

STATUS_BY_REASON: dict[RejectionReason, int] = {
    RejectionReason.VALIDATION_FAILED: status.HTTP_400_BAD_REQUEST,
    RejectionReason.PARTICIPANT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    RejectionReason.COURSE_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    RejectionReason.ENROLLMENT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    RejectionReason.ALREADY_ENROLLED: status.HTTP_400_BAD_REQUEST,
    RejectionReason.COURSE_FULL: status.HTTP_400_BAD_REQUEST,
    RejectionReason.ALLOCATION_EXHAUSTED: status.HTTP_503_SERVICE_UNAVAILABLE,
    RejectionReason.TRANSACTION_TIMEOUT: status.HTTP_503_SERVICE_UNAVAILABLE,
    RejectionReason.STORAGE_FAILURE: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def _field_name(loc: tuple[Any, ...]) -> str:
    parts = [str(part) for part in loc if part not in ("body", "query", "path")]
    return ".".join(parts) or "body"


async def ledger_error_handler(request: Request, exc: EnrollmentLedgerError) -> JSONResponse:
    """Render an enrollment rejection as the failure envelope."""
    status_code = STATUS_BY_REASON.get(exc.reason, status.HTTP_500_INTERNAL_SERVER_ERROR)
    headers = {"Retry-After": "1"} if exc.retryable else None
    return JSONResponse(status_code=status_code, content=exc.to_payload(), headers=headers)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render request validation failures as 400 with per-field details."""
    details = [
        {"field": _field_name(tuple(error.get("loc", ()))), "message": error.get("msg", "Invalid value")}
        for error in exc.errors()
    ]
    error = EnrollmentValidationError("Invalid request data", details=details)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=error.to_payload())


async def database_error_handler(request: Request, exc: DatabaseError) -> JSONResponse:
    """Render store failures outside the ledger (reads, session commit) as the failure envelope."""
    logger.error("Database error on %s %s: %s", request.method, request.url.path, str(exc))
    if exc.original_error is not None and is_timeout_error(exc.original_error):
        error: EnrollmentLedgerError = TransactionTimeoutError(str(exc.original_error))
    else:
        error = LedgerStorageError(type(exc.original_error or exc).__name__)
    return await ledger_error_handler(request, error)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render HTTP errors (401, 403, ...) in the same envelope."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Initializes and cleans up:
    - Structured logging
    - Database connections
    - Audit trail (event bus sink and audit log writer)

    Args:
        app: The FastAPI application instance.

    Yields:
        None during application runtime.
    """
    settings = get_settings()
    setup_logging(settings)
    logger.info("Starting CourseDesk API: environment=%s, debug=%s", settings.environment, settings.debug)

    # =========================================================================
    # Startup
    # =========================================================================

    try:
        await init_db()
        logger.info("Database connections initialized")
    except Exception as e:
        logger.warning("Failed to initialize database connections: %s", str(e))

    audit_sink: EventBusAuditSink | None = None
    audit_writer: AuditLogWriter | None = None
    if settings.audit.enabled:
        try:
            bus = get_event_bus()
            audit_writer = AuditLogWriter(get_sessionmaker())
            audit_writer.register(bus)
            audit_sink = EventBusAuditSink(bus)
            app.state.audit_sink = audit_sink
            logger.info("Audit trail enabled")

            await audit_writer.purge_old_logs(settings.audit.retention_days)
        except Exception as e:
            logger.warning("Failed to enable audit trail: %s", str(e))

    yield

    # =========================================================================
    # Shutdown
    # =========================================================================

    if audit_sink is not None:
        try:
            await audit_sink.drain()
        except Exception as e:
            logger.warning("Error flushing audit records: %s", str(e))
    app.state.audit_sink = None
    reset_event_bus()

    try:
        await close_db()
        logger.info("Database connections closed")
    except Exception as e:
        logger.warning("Error closing database connections: %s", str(e))

    logger.info("Shutting down CourseDesk API")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="CourseDesk API",
        description="Course back-office enrollment ledger",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
        # Disable automatic redirects from /path to /path/
        # This prevents 307 redirects that lose Authorization headers
        redirect_slashes=False,
    )

    # =========================================================================
    # Exception handlers
    # =========================================================================
    app.add_exception_handler(EnrollmentLedgerError, ledger_error_handler)
    app.add_exception_handler(DatabaseError, database_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)

    # =========================================================================
    # Middleware (order matters - last added is first executed)
    # =========================================================================
    app.add_middleware(AuthMiddleware, jwt_settings=settings.jwt)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors.origins_list,
        allow_credentials=settings.cors.allow_credentials,
        allow_methods=settings.cors.allow_methods,
        allow_headers=settings.cors.allow_headers,
    )

    # =========================================================================
    # Routes
    # =========================================================================
    app.include_router(health.router, tags=["Health"])
    app.include_router(v1_router)

    return app

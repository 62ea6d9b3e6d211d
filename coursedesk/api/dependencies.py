# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI dependency injection definitions.

This module provides dependency functions for FastAPI endpoints.
Dependencies are used to:
- Get database sessions
- Get authenticated users and enforce roles
- Build the actor context for audit records
- Get service instances

Example:
    @router.get("/enrollments")
    async def list_enrollments(
        db: AsyncSession = Depends(get_db),
        current_user: CurrentUser = Depends(require_admin),
    ):
        ...
"""

import logging
from typing import Annotated, AsyncGenerator

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from coursedesk.api.middleware.auth import CurrentUser, get_current_user
from coursedesk.core.config import get_settings
from coursedesk.domains.audit import ActorContext, AuditSink, NullAuditSink
from coursedesk.domains.enrollment import EnrollmentLedger, EnrollmentService
from coursedesk.infrastructure.database.connection import (
    close_database,
    create_all,
    get_session,
    init_database,
)

logger = logging.getLogger(__name__)


async def init_db() -> None:
    """Initialize the database connection pool.

    A SQLite store has no migration step in local runs, so its tables
    are created on startup.
    """
    settings = get_settings()
    await init_database(settings)

    if settings.database.is_sqlite:
        await create_all()
        logger.info("SQLite schema created")


async def close_db() -> None:
    """Close the database connection pool."""
    await close_database()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Get a database session for one request.

    Yields:
        AsyncSession bound to the application engine.
    """
    async with get_session() as session:
        yield session


# =========================================================================
# Authentication Dependencies
# =========================================================================


def require_auth(request: Request) -> CurrentUser:
    """Require authenticated user.

    Args:
        request: HTTP request.

    Returns:
        CurrentUser.

    Raises:
        HTTPException: If not authenticated or the token was rejected.
    """
    user = get_current_user(request)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=getattr(request.state, "auth_error", None) or "Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def require_admin(request: Request) -> CurrentUser:
    """Require back-office staff (ADMIN or SUPER_ADMIN).

    Raises:
        HTTPException: If not authenticated or not staff.
    """
    user = require_auth(request)
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user


def require_super_admin(request: Request) -> CurrentUser:
    """Require a super administrator.

    Raises:
        HTTPException: If not authenticated or not SUPER_ADMIN.
    """
    user = require_auth(request)
    if not user.is_super_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Super admin access required",
        )
    return user


def client_ip(request: Request) -> str | None:
    """Best-effort client address, honouring reverse proxy headers."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    return request.client.host if request.client else None


def actor_context(request: Request, user: CurrentUser) -> ActorContext:
    """Build the audit actor for an authenticated request."""
    user_agent = request.headers.get("User-Agent")
    return ActorContext(
        user_id=user.id,
        email=user.email,
        role=user.role,
        ip_address=client_ip(request),
        user_agent=user_agent[:255] if user_agent else None,
    )


# =========================================================================
# Service Dependencies
# =========================================================================


def get_audit_sink(request: Request) -> AuditSink:
    """Get the application's audit sink.

    Returns:
        The sink installed at startup, or a sink that drops records.
    """
    return getattr(request.app.state, "audit_sink", None) or NullAuditSink()


def get_enrollment_ledger(
    db: AsyncSession = Depends(get_db),
    audit_sink: AuditSink = Depends(get_audit_sink),
) -> EnrollmentLedger:
    """Get an EnrollmentLedger bound to the request session."""
    return EnrollmentLedger(db, settings=get_settings().ledger, audit_sink=audit_sink)


def get_enrollment_service(db: AsyncSession = Depends(get_db)) -> EnrollmentService:
    """Get an EnrollmentService bound to the request session."""
    return EnrollmentService(db)


# =========================================================================
# Type Aliases for Cleaner Endpoint Signatures
# =========================================================================

AdminUser = Annotated[CurrentUser, Depends(require_admin)]
SuperAdminUser = Annotated[CurrentUser, Depends(require_super_admin)]
Ledger = Annotated[EnrollmentLedger, Depends(get_enrollment_ledger)]
Enrollments = Annotated[EnrollmentService, Depends(get_enrollment_service)]

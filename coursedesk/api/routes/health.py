# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Health check endpoints.

``/health`` is liveness: it always answers 200 and reports the store as
healthy or degraded. ``/ready`` is readiness: it answers 503 until the
store is reachable and carries the ledger schema.
"""

import logging
import time
from datetime import datetime

from fastapi import APIRouter, Request, Response, status
from pydantic import BaseModel, Field
from sqlalchemy import select, text

from coursedesk import __version__
from coursedesk.core.config import get_settings
from coursedesk.infrastructure.database.connection import get_engine
from coursedesk.infrastructure.database.models import EnrollmentCodeCounter
from coursedesk.utils.datetime import utc_now

logger = logging.getLogger(__name__)

router = APIRouter()

_started_at = time.monotonic()


class ComponentHealth(BaseModel):
    """Status of one dependency."""

    status: str = Field(description="healthy or unhealthy")
    latency_ms: float | None = Field(None, description="Round trip in milliseconds")
    message: str | None = None


class HealthResponse(BaseModel):
    """Liveness report."""

    status: str = Field(description="healthy or degraded")
    timestamp: datetime
    version: str
    environment: str
    uptime_seconds: int
    database: ComponentHealth
    audit_pending: int | None = Field(None, description="Audit records not yet delivered")


class ReadinessResponse(BaseModel):
    """Readiness report."""

    ready: bool
    checks: dict[str, ComponentHealth]


async def check_database() -> ComponentHealth:
    """Round-trip a trivial query to the store."""
    try:
        started = time.perf_counter()
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        return ComponentHealth(
            status="healthy",
            latency_ms=round((time.perf_counter() - started) * 1000, 2),
        )
    except Exception as e:
        logger.error("Database health check failed: %s", str(e))
        return ComponentHealth(status="unhealthy", message="Database unreachable")


async def check_schema() -> ComponentHealth:
    """Check that the ledger tables exist (migrations have been applied)."""
    try:
        async with get_engine().connect() as conn:
            await conn.execute(select(EnrollmentCodeCounter.prefix).limit(1))
        return ComponentHealth(status="healthy")
    except Exception as e:
        logger.error("Schema check failed: %s", str(e))
        return ComponentHealth(status="unhealthy", message="Ledger tables missing")


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Report liveness together with store status."""
    database = await check_database()
    audit_sink = getattr(request.app.state, "audit_sink", None)

    return HealthResponse(
        status="healthy" if database.status == "healthy" else "degraded",
        timestamp=utc_now(),
        version=__version__,
        environment=get_settings().environment,
        uptime_seconds=int(time.monotonic() - _started_at),
        database=database,
        audit_pending=getattr(audit_sink, "pending", None),
    )


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_check(response: Response) -> ReadinessResponse:
    """Answer 503 until the store is reachable and migrated."""
    checks = {"database": await check_database()}
    if checks["database"].status == "healthy":
        checks["schema"] = await check_schema()

    ready = all(check.status == "healthy" for check in checks.values())
    if not ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return ReadinessResponse(ready=ready, checks=checks)

# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Audit trail for enrollment operations.

The ledger hands an ``AuditRecord`` to an ``AuditSink`` after its
transaction has finished. Recording is fire-and-forget: the default sink
publishes the record on the in-process event bus from a background task,
and ``AuditLogWriter`` persists it with its own session. A failure
anywhere on that path is logged and never reaches the caller.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Protocol

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coursedesk.infrastructure.database.models import AuditLog
from coursedesk.infrastructure.events import EventBus, EventData, EventPatterns
from coursedesk.utils.datetime import days_ago

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActorContext:
    """Who performed an operation and from where.

    Attributes:
        user_id: Authenticated actor id.
        email: Actor e-mail, if known.
        role: Actor role.
        ip_address: Client address (first X-Forwarded-For hop when proxied).
        user_agent: Client user agent.
    """

    user_id: str
    email: str | None = None
    role: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None


@dataclass
class AuditRecord:
    """One auditable action.

    Attributes:
        action: Event type, e.g. "enrollment.admitted".
        actor_id: Who performed the action.
        entity: Entity kind affected.
        entity_id: Entity id affected, when one exists.
        details: Free-form structured details.
        success: Whether the action succeeded.
        error_message: Failure description for unsuccessful actions.
        ip_address: Client address.
        user_agent: Client user agent.
    """

    action: str
    actor_id: str | None = None
    entity: str | None = "enrollment"
    entity_id: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    success: bool = True
    error_message: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None

    @classmethod
    def for_actor(cls, action: str, actor: ActorContext, **kwargs: Any) -> AuditRecord:
        """Build a record stamped with the actor's identity and client info."""
        return cls(
            action=action,
            actor_id=actor.user_id,
            ip_address=actor.ip_address,
            user_agent=actor.user_agent,
            **kwargs,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class AuditSink(Protocol):
    """Receives audit records. Must not raise into the caller."""

    async def record(self, record: AuditRecord) -> None: ...


class NullAuditSink:
    """Discards audit records."""

    async def record(self, record: AuditRecord) -> None:
        return None


class EventBusAuditSink:
    """Publishes audit records on the event bus without waiting for delivery.

    Background tasks are referenced until they finish so they are not
    garbage collected mid-flight; ``drain()`` waits for all of them.
    """

    def __init__(self, bus: EventBus) -> None:
        self._bus = bus
        self._pending: set[asyncio.Task[Any]] = set()

    async def record(self, record: AuditRecord) -> None:
        task = asyncio.create_task(self._publish(record))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _publish(self, record: AuditRecord) -> None:
        try:
            await self._bus.publish(record.action, record.to_dict())
        except Exception as e:
            logger.warning("Failed to publish audit record %s: %s", record.action, str(e))

    @property
    def pending(self) -> int:
        """Number of records handed over but not yet delivered."""
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every audit record handed over so far."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


class AuditLogWriter:
    """Persists audit records delivered over the event bus."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    def register(self, bus: EventBus) -> None:
        bus.subscribe(EventPatterns.ALL_ENROLLMENT, self.handle)

    def unregister(self, bus: EventBus) -> None:
        bus.unsubscribe(EventPatterns.ALL_ENROLLMENT, self.handle)

    async def handle(self, event: EventData) -> None:
        """Write one audit log row. Errors are logged, never raised."""
        payload = event.payload
        try:
            async with self._sessionmaker() as session:
                session.add(
                    AuditLog(
                        action=payload.get("action", event.event_type),
                        actor_id=payload.get("actor_id"),
                        entity=payload.get("entity"),
                        entity_id=payload.get("entity_id"),
                        details=payload.get("details") or None,
                        success=payload.get("success", True),
                        error_message=payload.get("error_message"),
                        ip_address=payload.get("ip_address"),
                        user_agent=payload.get("user_agent"),
                        created_at=event.timestamp,
                    )
                )
                await session.commit()
        except Exception as e:
            logger.error("Failed to write audit log for %s: %s", event.event_type, str(e))

    async def purge_old_logs(self, days: int = 90) -> int:
        """Delete audit logs older than a retention window.

        Args:
            days: Retention window in days.

        Returns:
            Number of rows deleted, 0 if the purge failed.
        """
        cutoff = days_ago(days)
        try:
            async with self._sessionmaker() as session:
                result = await session.execute(delete(AuditLog).where(AuditLog.created_at < cutoff))
                await session.commit()
        except Exception as e:
            logger.error("Failed to purge audit logs: %s", str(e))
            return 0

        deleted = result.rowcount or 0
        logger.info("Purged %d audit logs older than %d days", deleted, days)
        return deleted

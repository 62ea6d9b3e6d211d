# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""In-memory event bus for CourseDesk.

Decouples the enrollment ledger from whatever consumes its audit records.
Publishers emit events by type string; subscribers register for an exact
type (``"enrollment.admitted"``) or an fnmatch pattern (``"enrollment.*"``).

The bus lives in one process. Delivery is at most once: a handler that
raises is logged and counted in ``failed_deliveries``, and the event is
not retried.

Example:
    from coursedesk.infrastructure.events import get_event_bus, EventTypes

    bus = get_event_bus()

    async def on_admitted(event):
        print(event.payload["entity_id"])

    bus.subscribe(EventTypes.Enrollment.ADMITTED, on_admitted)
    await bus.publish(EventTypes.Enrollment.ADMITTED, {"entity_id": "..."})
"""

import asyncio
import fnmatch
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable
from uuid import uuid4

from coursedesk.utils.datetime import utc_now

logger = logging.getLogger(__name__)

EventHandler = Callable[["EventData"], Awaitable[None]]


@dataclass
class EventData:
    """One published event.

    Attributes:
        event_type: Type string, e.g. "enrollment.removed".
        payload: Event body.
        event_id: Unique id assigned at publication.
        timestamp: Publication time (UTC).
    """

    event_type: str
    payload: dict[str, Any]
    event_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "payload": self.payload,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class _Subscription:
    topic: str
    handler: EventHandler

    @property
    def is_pattern(self) -> bool:
        return "*" in self.topic or "?" in self.topic

    def matches(self, event_type: str) -> bool:
        if self.is_pattern:
            return fnmatch.fnmatchcase(event_type, self.topic)
        return event_type == self.topic


class EventBus:
    """Async publish/subscribe within one process.

    Matching handlers run concurrently; a failing handler never reaches
    the publisher or the other handlers.
    """

    def __init__(self) -> None:
        self._subscriptions: list[_Subscription] = []
        self._published: Counter[str] = Counter()
        self._failed_deliveries = 0

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """Register a handler for an event type or fnmatch pattern."""
        self._subscriptions.append(_Subscription(event_type, handler))
        logger.debug("Subscribed handler to: %s", event_type)

    def unsubscribe(self, event_type: str, handler: EventHandler) -> bool:
        """Remove one registration.

        Returns:
            True if the handler was registered for that type or pattern.
        """
        subscription = _Subscription(event_type, handler)
        if subscription not in self._subscriptions:
            return False
        self._subscriptions.remove(subscription)
        return True

    async def publish(self, event_type: str, payload: dict[str, Any]) -> EventData:
        """Deliver an event to every matching handler.

        Args:
            event_type: The event type string.
            payload: Event body.

        Returns:
            The published event with its id and timestamp.
        """
        event = EventData(event_type=event_type, payload=payload)
        self._published[event_type] += 1

        handlers = [s.handler for s in self._subscriptions if s.matches(event_type)]
        if not handlers:
            logger.debug("No handlers for event: %s", event_type)
            return event

        await asyncio.gather(*(self._deliver(handler, event) for handler in handlers))
        return event

    async def _deliver(self, handler: EventHandler, event: EventData) -> None:
        try:
            await handler(event)
        except Exception as e:
            self._failed_deliveries += 1
            logger.error(
                "Handler error for event %s (%s): %s",
                event.event_type,
                event.event_id,
                str(e),
                exc_info=True,
            )

    def clear(self) -> None:
        """Remove all subscriptions."""
        self._subscriptions.clear()

    def get_stats(self) -> dict[str, Any]:
        """Subscription and delivery counters."""
        exact = {s.topic for s in self._subscriptions if not s.is_pattern}
        patterns = sorted({s.topic for s in self._subscriptions if s.is_pattern})
        return {
            "exact_subscriptions": len(exact),
            "pattern_subscriptions": len(patterns),
            "total_handlers": len(self._subscriptions),
            "events_published": sum(self._published.values()),
            "published_by_type": dict(self._published),
            "failed_deliveries": self._failed_deliveries,
            "patterns": patterns,
        }


_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Get the process-wide event bus."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus


def reset_event_bus() -> None:
    """Drop the process-wide bus and its subscriptions.

    Called on application shutdown and between tests.
    """
    global _event_bus
    if _event_bus is not None:
        _event_bus.clear()
    _event_bus = None

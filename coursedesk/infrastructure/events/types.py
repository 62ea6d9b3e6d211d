# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Centralized event type definitions for CourseDesk.

Audit records travel over the event bus under these names; the audit log
writer subscribes to ``EventPatterns.ALL_ENROLLMENT``.
"""


class EventTypes:
    """All event types in CourseDesk organized by domain."""

    class Enrollment:
        """Enrollment ledger events."""

        ADMITTED = "enrollment.admitted"
        REJECTED_CAPACITY = "enrollment.rejected.capacity"
        REJECTED_DUPLICATE = "enrollment.rejected.duplicate"
        FAILED = "enrollment.failed"
        UPDATED = "enrollment.updated"
        REMOVED = "enrollment.removed"


class EventPatterns:
    """Wildcard patterns for subscribing to event groups."""

    ALL_ENROLLMENT = "enrollment.*"

# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SQLAlchemy models for CourseDesk.

Importing this package registers every table on ``Base.metadata``.
"""

from coursedesk.infrastructure.database.models.audit import AuditLog
from coursedesk.infrastructure.database.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from coursedesk.infrastructure.database.models.catalog import Course, Participant
from coursedesk.infrastructure.database.models.enrollment import (
    ENROLLMENT_CODE_CONSTRAINT,
    ENROLLMENT_PAIR_CONSTRAINT,
    Enrollment,
    EnrollmentCodeCounter,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "Course",
    "Participant",
    "Enrollment",
    "EnrollmentCodeCounter",
    "ENROLLMENT_CODE_CONSTRAINT",
    "ENROLLMENT_PAIR_CONSTRAINT",
    "AuditLog",
]

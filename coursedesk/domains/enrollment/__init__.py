# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Enrollment domain.

Exports:
    EnrollmentLedger: Admission, payment update and removal.
    EnrollmentService: Read-side listing and lookup.
    CapacityGuard: Store-side seat accounting.
    SequentialCodeAllocator: Year-scoped enrollment codes.
"""

from coursedesk.domains.enrollment.capacity import (
    CapacityDecision,
    CapacityGuard,
    SeatSnapshot,
    evaluate,
)
from coursedesk.domains.enrollment.codes import (
    EnrollmentCode,
    SequentialCodeAllocator,
    format_code,
    parse_code,
)
from coursedesk.domains.enrollment.errors import (
    AllocationExhaustedError,
    AlreadyEnrolledError,
    CourseFullError,
    CourseNotFoundError,
    EnrollmentLedgerError,
    EnrollmentNotFoundError,
    EnrollmentValidationError,
    ErrorCategory,
    LedgerStorageError,
    ParticipantNotFoundError,
    RejectionReason,
    TransactionTimeoutError,
)
from coursedesk.domains.enrollment.ledger import EnrollmentLedger, RemovedEnrollment
from coursedesk.domains.enrollment.service import EnrollmentService

__all__ = [
    "CapacityDecision",
    "CapacityGuard",
    "SeatSnapshot",
    "evaluate",
    "EnrollmentCode",
    "SequentialCodeAllocator",
    "format_code",
    "parse_code",
    "AllocationExhaustedError",
    "AlreadyEnrolledError",
    "CourseFullError",
    "CourseNotFoundError",
    "EnrollmentLedgerError",
    "EnrollmentNotFoundError",
    "EnrollmentValidationError",
    "ErrorCategory",
    "LedgerStorageError",
    "ParticipantNotFoundError",
    "RejectionReason",
    "TransactionTimeoutError",
    "EnrollmentLedger",
    "RemovedEnrollment",
    "EnrollmentService",
]

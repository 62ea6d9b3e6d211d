# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Enrollment ledger error types.

Every way an enrollment operation can be turned down is one exception
class. Each carries a machine-readable ``reason``, a coarse ``category``,
whether retrying the same request may succeed, and the context fields the
client needs (which id was missing, the seat numbers of a full course).

The HTTP layer maps ``reason`` to a status code in a single table; see
``coursedesk.api.app``.
"""

from enum import Enum
from typing import Any


class RejectionReason(str, Enum):
    """Why an enrollment operation did not succeed."""

    VALIDATION_FAILED = "VALIDATION_FAILED"
    PARTICIPANT_NOT_FOUND = "PARTICIPANT_NOT_FOUND"
    COURSE_NOT_FOUND = "COURSE_NOT_FOUND"
    ENROLLMENT_NOT_FOUND = "ENROLLMENT_NOT_FOUND"
    ALREADY_ENROLLED = "ALREADY_ENROLLED"
    COURSE_FULL = "COURSE_FULL"
    ALLOCATION_EXHAUSTED = "ALLOCATION_EXHAUSTED"
    TRANSACTION_TIMEOUT = "TRANSACTION_TIMEOUT"
    STORAGE_FAILURE = "STORAGE_FAILURE"


class ErrorCategory(str, Enum):
    """Coarse grouping of rejection reasons."""

    VALIDATION = "validation"
    CONFLICT = "conflict"
    ALLOCATION = "allocation"
    NOT_FOUND = "not_found"
    INFRASTRUCTURE = "infrastructure"


class EnrollmentLedgerError(Exception):
    """Base exception for enrollment ledger operations.

    Attributes:
        reason: Machine-readable rejection reason.
        category: Coarse error category.
        retryable: Whether the same request may succeed if retried.
        message: Human-readable description safe to show to clients.
        context: Extra fields rendered into the response payload.
    """

    reason: RejectionReason = RejectionReason.STORAGE_FAILURE
    category: ErrorCategory = ErrorCategory.INFRASTRUCTURE
    retryable: bool = False

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_payload(self) -> dict[str, Any]:
        """Render the failure envelope for API responses."""
        payload: dict[str, Any] = {
            "success": False,
            "error": self.message,
            "reason": self.reason.value,
        }
        payload.update(self.context)
        if self.retryable:
            payload["retryable"] = True
        return payload


class EnrollmentValidationError(EnrollmentLedgerError):
    """Request fields failed validation."""

    reason = RejectionReason.VALIDATION_FAILED
    category = ErrorCategory.VALIDATION

    def __init__(self, message: str, details: list[dict[str, str]]) -> None:
        super().__init__(message, details=details)
        self.details = details


class ParticipantNotFoundError(EnrollmentLedgerError):
    """Referenced participant does not exist."""

    reason = RejectionReason.PARTICIPANT_NOT_FOUND
    category = ErrorCategory.NOT_FOUND

    def __init__(self, participant_id: str) -> None:
        super().__init__("Participant not found", field="participantId")
        self.participant_id = participant_id


class CourseNotFoundError(EnrollmentLedgerError):
    """Referenced course does not exist."""

    reason = RejectionReason.COURSE_NOT_FOUND
    category = ErrorCategory.NOT_FOUND

    def __init__(self, course_id: str) -> None:
        super().__init__("Course not found", field="courseId")
        self.course_id = course_id


class EnrollmentNotFoundError(EnrollmentLedgerError):
    """Referenced enrollment does not exist."""

    reason = RejectionReason.ENROLLMENT_NOT_FOUND
    category = ErrorCategory.NOT_FOUND

    def __init__(self, enrollment_id: str) -> None:
        super().__init__("Enrollment not found")
        self.enrollment_id = enrollment_id


class AlreadyEnrolledError(EnrollmentLedgerError):
    """Participant already holds an enrollment in the course."""

    reason = RejectionReason.ALREADY_ENROLLED
    category = ErrorCategory.CONFLICT

    def __init__(self, participant_id: str, course_id: str) -> None:
        super().__init__("Participant is already enrolled in this course")
        self.participant_id = participant_id
        self.course_id = course_id


class CourseFullError(EnrollmentLedgerError):
    """Course has no seats left."""

    reason = RejectionReason.COURSE_FULL
    category = ErrorCategory.CONFLICT

    def __init__(self, course_id: str, max_seats: int, filled_seats: int) -> None:
        super().__init__(
            "Course has reached its maximum number of seats",
            maxSeats=max_seats,
            filledSeats=filled_seats,
        )
        self.course_id = course_id
        self.max_seats = max_seats
        self.filled_seats = filled_seats


class AllocationExhaustedError(EnrollmentLedgerError):
    """No enrollment code could be allocated."""

    reason = RejectionReason.ALLOCATION_EXHAUSTED
    category = ErrorCategory.ALLOCATION
    retryable = True

    def __init__(self, detail: str) -> None:
        super().__init__("Could not allocate an enrollment code, please retry")
        self.detail = detail


class TransactionTimeoutError(EnrollmentLedgerError):
    """Store did not complete the transaction in time."""

    reason = RejectionReason.TRANSACTION_TIMEOUT
    category = ErrorCategory.INFRASTRUCTURE
    retryable = True

    def __init__(self, detail: str = "") -> None:
        super().__init__("The operation timed out, please retry")
        self.detail = detail


class LedgerStorageError(EnrollmentLedgerError):
    """Unexpected store failure."""

    reason = RejectionReason.STORAGE_FAILURE
    category = ErrorCategory.INFRASTRUCTURE

    def __init__(self, detail: str = "") -> None:
        super().__init__("Internal error while processing the enrollment")
        self.detail = detail

# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Enrollment ledger.

The write core of enrollment management. Every operation is one
transaction on the caller's session:

- admit: check participant, course and pair, claim a seat, allocate a
  code, insert the enrollment, commit
- update: overwrite payment and attendance fields of one enrollment
- remove: delete one enrollment and give its seat back

Any rejection rolls the whole transaction back, so a seat is never taken
and a code never consumed without the enrollment that owns them. Audit
records are emitted after the transaction has ended; their delivery can
never change the outcome of the operation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from coursedesk.core.config.settings import LedgerSettings
from coursedesk.domains.audit import ActorContext, AuditRecord, AuditSink, NullAuditSink
from coursedesk.domains.enrollment.capacity import (
    CapacityDecision,
    CapacityGuard,
    SeatSnapshot,
)
from coursedesk.domains.enrollment.codes import SequentialCodeAllocator
from coursedesk.domains.enrollment.errors import (
    AllocationExhaustedError,
    AlreadyEnrolledError,
    CourseFullError,
    CourseNotFoundError,
    EnrollmentLedgerError,
    EnrollmentNotFoundError,
    LedgerStorageError,
    ParticipantNotFoundError,
    TransactionTimeoutError,
)
from coursedesk.domains.enrollment.service import EnrollmentService, to_response
from coursedesk.infrastructure.database.connection import is_timeout_error
from coursedesk.infrastructure.database.models import (
    ENROLLMENT_CODE_CONSTRAINT,
    ENROLLMENT_PAIR_CONSTRAINT,
    Course,
    Enrollment,
    Participant,
)
from coursedesk.infrastructure.database.models.base import new_uuid
from coursedesk.infrastructure.events import EventTypes
from coursedesk.models.enrollment import (
    AdmissionRequest,
    CourseSummary,
    EnrollmentResponse,
    EnrollmentUpdateRequest,
)
from coursedesk.utils.datetime import utc_now

logger = logging.getLogger(__name__)

# Unique violations as reported by PostgreSQL (constraint name) and
# SQLite (table.column list).
_PAIR_MARKERS = (ENROLLMENT_PAIR_CONSTRAINT, "enrollments.participant_id")
_CODE_MARKERS = (ENROLLMENT_CODE_CONSTRAINT, "enrollments.code")


@dataclass(frozen=True)
class RemovedEnrollment:
    """Outcome of a removal."""

    enrollment_id: str
    code: str
    participant_id: str
    course_id: str
    filled_seats: int | None


def _unique_violation(error: IntegrityError) -> str | None:
    message = str(error.orig)
    if any(marker in message for marker in _PAIR_MARKERS):
        return "pair"
    if any(marker in message for marker in _CODE_MARKERS):
        return "code"
    return None


def _storage_error(error: SQLAlchemyError) -> EnrollmentLedgerError:
    if is_timeout_error(error):
        return TransactionTimeoutError(str(getattr(error, "orig", error)))
    return LedgerStorageError(type(error).__name__)


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


class EnrollmentLedger:
    """Admits, updates and removes enrollments.

    Attributes:
        db: Session owning the operation's transaction.
        settings: Ledger configuration.
        audit_sink: Receiver of audit records.
        capacity: Store-side seat accounting.
        codes: Enrollment code allocator.
    """

    def __init__(
        self,
        db: AsyncSession,
        settings: LedgerSettings | None = None,
        audit_sink: AuditSink | None = None,
        clock: Callable[[], datetime] = utc_now,
        capacity_guard: CapacityGuard | None = None,
        code_allocator: SequentialCodeAllocator | None = None,
    ) -> None:
        """Initialize the ledger.

        Args:
            db: Async database session; the ledger commits or rolls it back.
            settings: Ledger settings; defaults are used when omitted.
            audit_sink: Audit receiver; records are dropped when omitted.
            clock: Source of "now" for the admission time and code year.
            capacity_guard: Seat accounting override.
            code_allocator: Code allocator override.
        """
        self.db = db
        self.clock = clock
        self.settings = settings or LedgerSettings()
        self.audit_sink = audit_sink or NullAuditSink()
        self.capacity = capacity_guard or CapacityGuard()
        self.codes = code_allocator or SequentialCodeAllocator(
            prefix=self.settings.code_prefix,
            timezone=self.settings.code_timezone,
            clock=clock,
        )

    async def admit(self, request: AdmissionRequest, actor: ActorContext) -> EnrollmentResponse:
        """Admit a participant into a course.

        Args:
            request: Validated admission request.
            actor: Authenticated registrar performing the admission.

        Returns:
            The new enrollment with participant and course display fields.

        Raises:
            ParticipantNotFoundError: If the participant does not exist.
            CourseNotFoundError: If the course does not exist.
            AlreadyEnrolledError: If the pair is already enrolled.
            CourseFullError: If the course has no seat left.
            AllocationExhaustedError: If no code could be allocated.
            TransactionTimeoutError: If the store timed out.
            LedgerStorageError: On any other store failure.
        """
        admitted_at = self.clock()
        try:
            participant = await self._get_participant(request.participant_id)
            course = await self._get_course(request.course_id)
            await self._ensure_not_enrolled(participant.id, course.id)
            seats = await self._claim_seat(course.id)
            enrollment = await self._insert_enrollment(request, actor, admitted_at)
            await self.db.commit()
        except EnrollmentLedgerError as e:
            await self.db.rollback()
            await self._record_admission_rejection(e, request, actor)
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            error = _storage_error(e)
            logger.error(
                "Admission failed in store: participant=%s, course=%s, error=%s",
                request.participant_id,
                request.course_id,
                str(e),
            )
            await self._record_admission_rejection(error, request, actor)
            raise error from e

        logger.info(
            "Admitted enrollment: code=%s, participant=%s, course=%s, seats=%s/%s, by=%s",
            enrollment.code,
            participant.id,
            course.id,
            seats.filled_seats,
            seats.max_seats,
            actor.user_id,
        )

        await self._record(
            AuditRecord.for_actor(
                EventTypes.Enrollment.ADMITTED,
                actor,
                entity_id=enrollment.id,
                details={
                    "code": enrollment.code,
                    "participant_id": participant.id,
                    "course_id": course.id,
                    "payment_state": enrollment.payment_state,
                    "amount_paid": _jsonable(enrollment.amount_paid),
                    "filled_seats": seats.filled_seats,
                    "max_seats": seats.max_seats,
                },
            )
        )

        return to_response(
            enrollment,
            participant,
            CourseSummary(
                id=course.id,
                title=course.title,
                max_seats=seats.max_seats,
                filled_seats=seats.filled_seats,
            ),
        )

    async def update(
        self,
        enrollment_id: str,
        request: EnrollmentUpdateRequest,
        actor: ActorContext,
    ) -> EnrollmentResponse:
        """Overwrite payment and attendance fields of an enrollment.

        Values are assigned, never accumulated, so repeating the same
        update leaves the enrollment unchanged. Seats and codes are not
        touched.

        Raises:
            EnrollmentNotFoundError: If the enrollment does not exist.
            TransactionTimeoutError: If the store timed out.
            LedgerStorageError: On any other store failure.
        """
        changes = request.changes()
        try:
            enrollment = await EnrollmentService(self.db).load(enrollment_id)
            if enrollment is None:
                raise EnrollmentNotFoundError(enrollment_id)

            for name, value in changes.items():
                setattr(enrollment, name, value)
            await self.db.commit()
        except EnrollmentLedgerError as e:
            await self.db.rollback()
            await self._record_failure(e, actor, enrollment_id, {"operation": "update"})
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            error = _storage_error(e)
            logger.error("Enrollment update failed: id=%s, error=%s", enrollment_id, str(e))
            await self._record_failure(error, actor, enrollment_id, {"operation": "update"})
            raise error from e

        logger.info(
            "Updated enrollment: code=%s, fields=%s, by=%s",
            enrollment.code,
            sorted(changes),
            actor.user_id,
        )

        await self._record(
            AuditRecord.for_actor(
                EventTypes.Enrollment.UPDATED,
                actor,
                entity_id=enrollment.id,
                details={
                    "code": enrollment.code,
                    "changes": {name: _jsonable(value) for name, value in changes.items()},
                },
            )
        )

        return to_response(enrollment, enrollment.participant, enrollment.course)

    async def remove(self, enrollment_id: str, actor: ActorContext) -> RemovedEnrollment:
        """Delete an enrollment and release its seat.

        The delete and the seat release commit together. Of two concurrent
        removals of the same enrollment exactly one succeeds.

        Raises:
            EnrollmentNotFoundError: If the enrollment does not exist.
            TransactionTimeoutError: If the store timed out.
            LedgerStorageError: On any other store failure.
        """
        try:
            result = await self.db.execute(
                delete(Enrollment)
                .where(Enrollment.id == enrollment_id)
                .returning(Enrollment.code, Enrollment.participant_id, Enrollment.course_id)
                .execution_options(synchronize_session=False)
            )
            row = result.one_or_none()
            if row is None:
                raise EnrollmentNotFoundError(enrollment_id)

            seats = await self.capacity.release_seat(self.db, row.course_id)
            await self.db.commit()
        except EnrollmentLedgerError as e:
            await self.db.rollback()
            await self._record_failure(e, actor, enrollment_id, {"operation": "remove"})
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            error = _storage_error(e)
            logger.error("Enrollment removal failed: id=%s, error=%s", enrollment_id, str(e))
            await self._record_failure(error, actor, enrollment_id, {"operation": "remove"})
            raise error from e

        removed = RemovedEnrollment(
            enrollment_id=enrollment_id,
            code=row.code,
            participant_id=row.participant_id,
            course_id=row.course_id,
            filled_seats=seats.filled_seats if seats else None,
        )

        logger.info(
            "Removed enrollment: code=%s, course=%s, by=%s",
            removed.code,
            removed.course_id,
            actor.user_id,
        )

        await self._record(
            AuditRecord.for_actor(
                EventTypes.Enrollment.REMOVED,
                actor,
                entity_id=enrollment_id,
                details={
                    "code": removed.code,
                    "participant_id": removed.participant_id,
                    "course_id": removed.course_id,
                    "filled_seats": removed.filled_seats,
                },
            )
        )

        return removed

    async def _get_participant(self, participant_id: str) -> Participant:
        participant = await self.db.get(Participant, participant_id)
        if participant is None:
            raise ParticipantNotFoundError(participant_id)
        return participant

    async def _get_course(self, course_id: str) -> Course:
        course = await self.db.get(Course, course_id)
        if course is None:
            raise CourseNotFoundError(course_id)
        return course

    async def _ensure_not_enrolled(self, participant_id: str, course_id: str) -> None:
        result = await self.db.execute(
            select(Enrollment.id).where(
                Enrollment.participant_id == participant_id,
                Enrollment.course_id == course_id,
            )
        )
        if result.first() is not None:
            raise AlreadyEnrolledError(participant_id, course_id)

    async def _claim_seat(self, course_id: str) -> SeatSnapshot:
        """Take a seat, explaining a refusal from a fresh read of the course."""
        for attempt in range(1, self.settings.seat_claim_attempts + 1):
            claimed = await self.capacity.claim_seat(self.db, course_id)
            if claimed is not None:
                return claimed

            current = await self.capacity.snapshot(self.db, course_id)
            if current is None:
                raise CourseNotFoundError(course_id)
            if current.decision is CapacityDecision.REJECT_FULL:
                raise CourseFullError(
                    course_id,
                    max_seats=current.max_seats or 0,
                    filled_seats=current.filled_seats,
                )

            logger.debug("Seat freed during claim, retrying: course=%s, attempt=%d", course_id, attempt)

        raise TransactionTimeoutError(f"seat claim for course {course_id} kept racing concurrent updates")

    async def _insert_enrollment(
        self,
        request: AdmissionRequest,
        actor: ActorContext,
        admitted_at: datetime,
    ) -> Enrollment:
        """Insert the enrollment, drawing a new code if one collides."""
        attempts = self.settings.code_allocation_attempts
        year = self.codes.year_of(admitted_at)
        for attempt in range(1, attempts + 1):
            code = await self.codes.allocate(self.db, year=year)
            enrollment = Enrollment(
                id=new_uuid(),
                code=code,
                participant_id=request.participant_id,
                course_id=request.course_id,
                payment_state=request.payment_state.value,
                amount_paid=request.amount_paid,
                payment_method=request.payment_method.value if request.payment_method else None,
                payment_date=request.payment_date,
                attended=request.attended,
                notes=request.notes,
                registrar_id=actor.user_id,
                created_at=admitted_at,
                updated_at=admitted_at,
            )
            try:
                async with self.db.begin_nested():
                    self.db.add(enrollment)
            except IntegrityError as e:
                violation = _unique_violation(e)
                if violation == "pair":
                    raise AlreadyEnrolledError(request.participant_id, request.course_id) from e
                if violation != "code":
                    raise
                logger.warning("Enrollment code collision: code=%s, attempt=%d/%d", code, attempt, attempts)
                continue
            return enrollment

        raise AllocationExhaustedError(f"{attempts} consecutive code collisions")

    async def _record(self, record: AuditRecord) -> None:
        try:
            await self.audit_sink.record(record)
        except Exception as e:
            logger.warning("Audit record dropped: action=%s, error=%s", record.action, str(e))

    async def _record_admission_rejection(
        self,
        error: EnrollmentLedgerError,
        request: AdmissionRequest,
        actor: ActorContext,
    ) -> None:
        if isinstance(error, CourseFullError):
            action = EventTypes.Enrollment.REJECTED_CAPACITY
        elif isinstance(error, AlreadyEnrolledError):
            action = EventTypes.Enrollment.REJECTED_DUPLICATE
        else:
            action = EventTypes.Enrollment.FAILED

        await self._record(
            AuditRecord.for_actor(
                action,
                actor,
                details={
                    "operation": "admit",
                    "participant_id": request.participant_id,
                    "course_id": request.course_id,
                    "reason": error.reason.value,
                    **error.context,
                },
                success=False,
                error_message=error.message,
            )
        )

    async def _record_failure(
        self,
        error: EnrollmentLedgerError,
        actor: ActorContext,
        enrollment_id: str,
        details: dict[str, Any],
    ) -> None:
        await self._record(
            AuditRecord.for_actor(
                EventTypes.Enrollment.FAILED,
                actor,
                entity_id=enrollment_id,
                details={**details, "reason": error.reason.value},
                success=False,
                error_message=error.message,
            )
        )

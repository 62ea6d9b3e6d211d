# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Read-side enrollment queries.

This module provides the EnrollmentService class for:
- Listing enrollments with optional course, participant and payment filters
- Fetching a single enrollment with participant and course display fields

All writes go through ``EnrollmentLedger``.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from coursedesk.domains.enrollment.errors import EnrollmentNotFoundError
from coursedesk.infrastructure.database.models import Course, Enrollment, Participant
from coursedesk.models.common import PaymentMethod, PaymentState
from coursedesk.models.enrollment import CourseSummary, EnrollmentResponse, ParticipantSummary

logger = logging.getLogger(__name__)


def to_response(
    enrollment: Enrollment,
    participant: Participant | None = None,
    course: CourseSummary | Course | None = None,
) -> EnrollmentResponse:
    """Convert an enrollment row to its response DTO.

    Args:
        enrollment: Enrollment model instance.
        participant: Participant to embed, if loaded.
        course: Course (or an already-built summary) to embed, if loaded.

    Returns:
        EnrollmentResponse DTO.
    """
    participant_summary = None
    if participant is not None:
        participant_summary = ParticipantSummary(
            id=participant.id,
            document_type=participant.document_type,
            document_number=participant.document_number,
            full_name=participant.full_name,
            email=participant.email,
        )

    course_summary = course
    if isinstance(course, Course):
        course_summary = CourseSummary(
            id=course.id,
            title=course.title,
            max_seats=course.max_seats,
            filled_seats=course.filled_seats,
        )

    return EnrollmentResponse(
        id=enrollment.id,
        code=enrollment.code,
        participant_id=enrollment.participant_id,
        course_id=enrollment.course_id,
        payment_state=PaymentState(enrollment.payment_state),
        amount_paid=float(enrollment.amount_paid),
        payment_method=PaymentMethod(enrollment.payment_method) if enrollment.payment_method else None,
        payment_date=enrollment.payment_date,
        attended=enrollment.attended,
        notes=enrollment.notes,
        registrar_id=enrollment.registrar_id,
        created_at=enrollment.created_at,
        updated_at=enrollment.updated_at,
        participant=participant_summary,
        course=course_summary,
    )


class EnrollmentService:
    """Read-only access to enrollments.

    Attributes:
        db: Async database session.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def list_enrollments(
        self,
        course_id: str | None = None,
        participant_id: str | None = None,
        payment_state: PaymentState | None = None,
    ) -> tuple[list[EnrollmentResponse], int]:
        """List enrollments, newest first.

        Filters are combined with AND; omitted filters match everything.

        Returns:
            Tuple of (enrollments, total count).
        """
        query = select(Enrollment).options(
            joinedload(Enrollment.participant),
            joinedload(Enrollment.course),
        )

        if course_id:
            query = query.where(Enrollment.course_id == course_id)
        if participant_id:
            query = query.where(Enrollment.participant_id == participant_id)
        if payment_state:
            query = query.where(Enrollment.payment_state == payment_state.value)

        query = query.order_by(Enrollment.created_at.desc(), Enrollment.code.desc()).execution_options(
            populate_existing=True
        )

        result = await self.db.execute(query)
        enrollments = result.scalars().all()

        items = [to_response(e, e.participant, e.course) for e in enrollments]
        return items, len(items)

    async def get_enrollment(self, enrollment_id: str) -> EnrollmentResponse:
        """Get one enrollment with participant and course details.

        Raises:
            EnrollmentNotFoundError: If no such enrollment exists.
        """
        enrollment = await self.load(enrollment_id)
        if enrollment is None:
            raise EnrollmentNotFoundError(enrollment_id)
        return to_response(enrollment, enrollment.participant, enrollment.course)

    async def load(self, enrollment_id: str) -> Enrollment | None:
        """Load an enrollment row with its participant and course."""
        result = await self.db.execute(
            select(Enrollment)
            .options(joinedload(Enrollment.participant), joinedload(Enrollment.course))
            .where(Enrollment.id == enrollment_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

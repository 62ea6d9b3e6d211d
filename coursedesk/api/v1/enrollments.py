# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Enrollment API endpoints.

This module provides endpoints for enrollment management:
- POST / - Admit a participant into a course
- GET / - List enrollments with filtering
- GET /{enrollment_id} - Get enrollment details
- PUT /{enrollment_id} - Update payment and attendance
- DELETE /{enrollment_id} - Remove enrollment and release its seat

All endpoints require back-office staff (ADMIN or SUPER_ADMIN); removal
requires SUPER_ADMIN. Ledger rejections are rendered by the application
exception handler.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, Request, status

from coursedesk.api.dependencies import (
    AdminUser,
    Enrollments,
    Ledger,
    SuperAdminUser,
    actor_context,
)
from coursedesk.models.common import PaymentState
from coursedesk.models.enrollment import (
    AdmissionRequest,
    EnrollmentDeletedResponse,
    EnrollmentEnvelope,
    EnrollmentListResponse,
    EnrollmentUpdateRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "",
    response_model=EnrollmentEnvelope,
    status_code=status.HTTP_201_CREATED,
    summary="Admit participant",
    description="Enroll a participant in a course, taking a seat and assigning a code.",
)
async def admit_enrollment(
    request: Request,
    data: AdmissionRequest,
    current_user: AdminUser,
    ledger: Ledger,
) -> EnrollmentEnvelope:
    """Admit a participant into a course.

    Args:
        request: HTTP request, used for the audit actor.
        data: Admission request.
        current_user: Authenticated staff member.
        ledger: Enrollment ledger bound to the request session.

    Returns:
        The created enrollment.
    """
    logger.info(
        "Admitting participant: participant=%s, course=%s, by=%s",
        data.participant_id,
        data.course_id,
        current_user.id,
    )

    enrollment = await ledger.admit(data, actor_context(request, current_user))
    return EnrollmentEnvelope(
        enrollment=enrollment,
        message=f"Enrollment {enrollment.code} created",
    )


@router.get(
    "",
    response_model=EnrollmentListResponse,
    summary="List enrollments",
    description="List enrollments, newest first, filtered by course, participant or payment state.",
)
async def list_enrollments(
    current_user: AdminUser,
    service: Enrollments,
    course_id: Annotated[str | None, Query(alias="courseId")] = None,
    participant_id: Annotated[str | None, Query(alias="participantId")] = None,
    payment_state: Annotated[str | None, Query(alias="paymentState")] = None,
) -> EnrollmentListResponse:
    """List enrollments.

    Args:
        current_user: Authenticated staff member.
        service: Read-side enrollment service.
        course_id: Only enrollments in this course.
        participant_id: Only enrollments of this participant.
        payment_state: Only enrollments in this payment state (legacy
            spellings accepted).

    Returns:
        Matching enrollments and their count.
    """
    state = None
    if payment_state:
        try:
            state = PaymentState.normalize(payment_state)
        except ValueError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    enrollments, total = await service.list_enrollments(
        course_id=course_id,
        participant_id=participant_id,
        payment_state=state,
    )
    return EnrollmentListResponse(enrollments=enrollments, total=total)


@router.get(
    "/{enrollment_id}",
    response_model=EnrollmentEnvelope,
    summary="Get enrollment",
    description="Get one enrollment with participant and course details.",
)
async def get_enrollment(
    enrollment_id: str,
    current_user: AdminUser,
    service: Enrollments,
) -> EnrollmentEnvelope:
    """Get enrollment details."""
    enrollment = await service.get_enrollment(enrollment_id)
    return EnrollmentEnvelope(enrollment=enrollment)


@router.put(
    "/{enrollment_id}",
    response_model=EnrollmentEnvelope,
    summary="Update enrollment",
    description="Update payment state, amount, method, date, attendance or notes.",
)
async def update_enrollment(
    request: Request,
    enrollment_id: str,
    data: EnrollmentUpdateRequest,
    current_user: AdminUser,
    ledger: Ledger,
) -> EnrollmentEnvelope:
    """Update payment and attendance fields of an enrollment.

    Only the fields present in the body are changed.
    """
    enrollment = await ledger.update(enrollment_id, data, actor_context(request, current_user))
    return EnrollmentEnvelope(
        enrollment=enrollment,
        message="Enrollment updated",
    )


@router.delete(
    "/{enrollment_id}",
    response_model=EnrollmentDeletedResponse,
    summary="Remove enrollment",
    description="Delete an enrollment and release its seat. Requires super admin access.",
)
async def remove_enrollment(
    request: Request,
    enrollment_id: str,
    current_user: SuperAdminUser,
    ledger: Ledger,
) -> EnrollmentDeletedResponse:
    """Remove an enrollment and give its seat back to the course."""
    logger.info("Removing enrollment: id=%s, by=%s", enrollment_id, current_user.id)

    removed = await ledger.remove(enrollment_id, actor_context(request, current_user))
    return EnrollmentDeletedResponse(
        message=f"Enrollment {removed.code} removed",
        code=removed.code,
        course_id=removed.course_id,
    )

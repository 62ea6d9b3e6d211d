# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Enrollment ledger tables.

- enrollments: one row per admitted (participant, course) pair
- enrollment_code_counters: one locked counter row per (prefix, year),
  the only source of the next reference code sequence number
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from coursedesk.infrastructure.database.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from coursedesk.infrastructure.database.models.catalog import Course, Participant

ENROLLMENT_CODE_CONSTRAINT = "uq_enrollments_code"
ENROLLMENT_PAIR_CONSTRAINT = "uq_enrollments_participant_course"


class Enrollment(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """An admitted participant in a course.

    Attributes:
        code: Year-scoped sequential reference code, globally unique.
        participant_id: Enrolled participant.
        course_id: Course the participant occupies a seat in.
        payment_state: PENDING, PAID or UNPAID.
        amount_paid: Amount received so far.
        payment_method: How the payment was made, if known.
        payment_date: When the payment was made, if known.
        attended: Whether the participant attended.
        notes: Free-form remarks.
        registrar_id: Authenticated actor who performed the admission.
    """

    __tablename__ = "enrollments"
    __table_args__ = (
        UniqueConstraint("code", name=ENROLLMENT_CODE_CONSTRAINT),
        UniqueConstraint("participant_id", "course_id", name=ENROLLMENT_PAIR_CONSTRAINT),
        CheckConstraint("amount_paid >= 0", name="amount_paid_non_negative"),
    )

    code: Mapped[str] = mapped_column(String(20), nullable=False)
    participant_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("participants.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    course_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("courses.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    payment_state: Mapped[str] = mapped_column(String(10), nullable=False, default="PENDING")
    amount_paid: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    payment_method: Mapped[str | None] = mapped_column(String(20), nullable=True)
    payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    attended: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)
    registrar_id: Mapped[str] = mapped_column(String(36), nullable=False)

    participant: Mapped[Participant] = relationship(lazy="raise")
    course: Mapped[Course] = relationship(lazy="raise")

    def __repr__(self) -> str:
        return f"<Enrollment {self.code} participant={self.participant_id} course={self.course_id}>"


class EnrollmentCodeCounter(Base):
    """Per-year sequence counter for enrollment codes.

    Incremented with a single atomic UPDATE ... RETURNING, which takes a
    row lock for the rest of the allocating transaction.
    """

    __tablename__ = "enrollment_code_counters"

    prefix: Mapped[str] = mapped_column(String(10), primary_key=True)
    year: Mapped[int] = mapped_column(Integer, primary_key=True)
    last_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

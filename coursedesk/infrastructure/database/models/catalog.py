# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Catalog and participant records.

Courses and participants are maintained by catalog and participant
management. The enrollment ledger only reads participants and mutates
exactly one course column, ``filled_seats``.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import CheckConstraint, Date, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from coursedesk.infrastructure.database.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Course(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A course offering with an optional seat ceiling.

    Attributes:
        title: Display title.
        status: Publication status as managed by the catalog.
        price: List price, if any.
        max_seats: Seat ceiling; None means unbounded.
        filled_seats: Current occupancy, mutated only by the ledger.
        starts_on: First session date.
        ends_on: Last session date.
    """

    __tablename__ = "courses"
    __table_args__ = (
        CheckConstraint("filled_seats >= 0", name="filled_seats_non_negative"),
        CheckConstraint("max_seats IS NULL OR max_seats >= 0", name="max_seats_non_negative"),
        CheckConstraint(
            "max_seats IS NULL OR filled_seats <= max_seats",
            name="filled_seats_within_capacity",
        ),
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="PUBLISHED")
    price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    max_seats: Mapped[int | None] = mapped_column(Integer, nullable=True)
    filled_seats: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    starts_on: Mapped[date | None] = mapped_column(Date, nullable=True)
    ends_on: Mapped[date | None] = mapped_column(Date, nullable=True)

    def __repr__(self) -> str:
        return f"<Course {self.id} seats={self.filled_seats}/{self.max_seats}>"


class Participant(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A person who can be enrolled in courses.

    The natural key is (document_type, document_number).
    """

    __tablename__ = "participants"
    __table_args__ = (
        UniqueConstraint(
            "document_type",
            "document_number",
            name="uq_participants_document",
        ),
    )

    document_type: Mapped[str] = mapped_column(String(20), nullable=False)
    document_number: Mapped[str] = mapped_column(String(20), nullable=False)
    first_names: Mapped[str] = mapped_column(String(100), nullable=False)
    last_names: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(20), nullable=True)

    @property
    def full_name(self) -> str:
        """First and last names joined for display."""
        return f"{self.first_names} {self.last_names}".strip()

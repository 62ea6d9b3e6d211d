# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Course capacity guard.

The admission decision is a pure function of the course's seat numbers.
The store-side counterpart is a single conditional UPDATE that both checks
and increments ``filled_seats``, so two concurrent admissions can never
both take the last seat.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from coursedesk.infrastructure.database.models import Course

logger = logging.getLogger(__name__)


class CapacityDecision(str, Enum):
    """Outcome of a capacity check."""

    ADMIT = "admit"
    REJECT_FULL = "reject_full"


@dataclass(frozen=True)
class SeatSnapshot:
    """Seat numbers of a course at one point in time."""

    course_id: str
    max_seats: int | None
    filled_seats: int

    @property
    def decision(self) -> CapacityDecision:
        return evaluate(self.max_seats, self.filled_seats)


def evaluate(max_seats: int | None, filled_seats: int) -> CapacityDecision:
    """Decide whether one more participant fits.

    Args:
        max_seats: Seat ceiling, or None for an unbounded course.
        filled_seats: Seats currently taken.

    Returns:
        ADMIT when there is room, REJECT_FULL otherwise.
    """
    if max_seats is None:
        return CapacityDecision.ADMIT
    if filled_seats < max_seats:
        return CapacityDecision.ADMIT
    return CapacityDecision.REJECT_FULL


class CapacityGuard:
    """Store-side seat accounting for courses.

    All methods run inside the caller's transaction and never commit.
    """

    async def claim_seat(self, session: AsyncSession, course_id: str) -> SeatSnapshot | None:
        """Atomically take one seat if the course has room.

        Args:
            session: Session whose transaction the claim joins.
            course_id: Course to claim a seat in.

        Returns:
            Seat numbers after the increment, or None when no row matched
            (course missing or full).
        """
        stmt = (
            update(Course)
            .where(
                Course.id == course_id,
                or_(Course.max_seats.is_(None), Course.filled_seats < Course.max_seats),
            )
            .values(filled_seats=Course.filled_seats + 1)
            .returning(Course.max_seats, Course.filled_seats)
            .execution_options(synchronize_session=False)
        )
        row = (await session.execute(stmt)).one_or_none()
        if row is None:
            return None
        return SeatSnapshot(course_id=course_id, max_seats=row.max_seats, filled_seats=row.filled_seats)

    async def release_seat(self, session: AsyncSession, course_id: str) -> SeatSnapshot | None:
        """Give back one seat, never going below zero.

        Returns:
            Seat numbers after the decrement, or None if nothing changed.
        """
        stmt = (
            update(Course)
            .where(Course.id == course_id, Course.filled_seats > 0)
            .values(filled_seats=Course.filled_seats - 1)
            .returning(Course.max_seats, Course.filled_seats)
            .execution_options(synchronize_session=False)
        )
        row = (await session.execute(stmt)).one_or_none()
        if row is None:
            logger.warning("Seat release found no occupied seat: course=%s", course_id)
            return None
        return SeatSnapshot(course_id=course_id, max_seats=row.max_seats, filled_seats=row.filled_seats)

    async def snapshot(self, session: AsyncSession, course_id: str) -> SeatSnapshot | None:
        """Read the current seat numbers of a course.

        Returns:
            The snapshot, or None if the course does not exist.
        """
        result = await session.execute(
            select(Course.max_seats, Course.filled_seats).where(Course.id == course_id)
        )
        row = result.one_or_none()
        if row is None:
            return None
        return SeatSnapshot(course_id=course_id, max_seats=row.max_seats, filled_seats=row.filled_seats)

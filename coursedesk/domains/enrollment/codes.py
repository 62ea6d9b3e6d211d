# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Sequential enrollment code allocation.

Codes look like ``INS-2025-00042``: a configurable prefix, the calendar
year the enrollment was admitted in, and a five digit sequence that
restarts at 00001 every year.

The next sequence number comes from one counter row per (prefix, year),
incremented with a single ``UPDATE ... RETURNING``. The update takes a row
lock that is held until the admitting transaction ends, so concurrent
admissions in the same year are serialised on that row and each sees a
distinct value. If the transaction rolls back, the increment is undone
with it.

The counter row for a new year is created on first use and seeded from
the highest code already stored for that year, which keeps numbering
continuous for enrollments imported from elsewhere.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from coursedesk.domains.enrollment.errors import AllocationExhaustedError
from coursedesk.infrastructure.database.models import Enrollment, EnrollmentCodeCounter
from coursedesk.utils.datetime import utc_now, year_in_zone

logger = logging.getLogger(__name__)

SEQUENCE_DIGITS = 5
MAX_SEQUENCE = 10**SEQUENCE_DIGITS - 1
CODE_PATTERN = re.compile(r"^(?P<prefix>[A-Z][A-Z0-9]{0,9})-(?P<year>\d{4})-(?P<sequence>\d{5})$")

# Bound on the create-counter race; a second pass always finds the row.
_COUNTER_CREATE_ATTEMPTS = 3


@dataclass(frozen=True)
class EnrollmentCode:
    """A parsed enrollment code."""

    prefix: str
    year: int
    sequence: int

    def __str__(self) -> str:
        return format_code(self.prefix, self.year, self.sequence)


def format_code(prefix: str, year: int, sequence: int) -> str:
    """Render an enrollment code.

    Args:
        prefix: Code prefix, e.g. "INS".
        year: Four digit calendar year.
        sequence: Sequence number within the year, 1..99999.

    Returns:
        The formatted code, e.g. "INS-2025-00001".

    Raises:
        ValueError: If the year or sequence is out of range.
    """
    if not 1 <= sequence <= MAX_SEQUENCE:
        raise ValueError(f"Sequence out of range: {sequence}")
    if not 1000 <= year <= 9999:
        raise ValueError(f"Year out of range: {year}")
    return f"{prefix}-{year:04d}-{sequence:0{SEQUENCE_DIGITS}d}"


def parse_code(code: str) -> EnrollmentCode:
    """Parse an enrollment code.

    Raises:
        ValueError: If the code is not in PREFIX-YYYY-NNNNN form.
    """
    match = CODE_PATTERN.match(code or "")
    if match is None:
        raise ValueError(f"Malformed enrollment code: {code!r}")
    return EnrollmentCode(
        prefix=match.group("prefix"),
        year=int(match.group("year")),
        sequence=int(match.group("sequence")),
    )


class SequentialCodeAllocator:
    """Allocates year-scoped sequential enrollment codes.

    Must be called inside the admitting transaction; never commits.

    Attributes:
        prefix: Code prefix.
        timezone: Time zone whose calendar year scopes the sequence.
    """

    def __init__(
        self,
        prefix: str = "INS",
        timezone: str = "UTC",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.prefix = prefix
        self.timezone = timezone
        self._clock = clock

    def year_of(self, moment: datetime) -> int:
        """Calendar year of an instant in the configured time zone."""
        return year_in_zone(moment, self.timezone)

    def current_year(self) -> int:
        """Calendar year of "now" in the configured time zone."""
        return self.year_of(self._clock())

    async def allocate(self, session: AsyncSession, year: int | None = None) -> str:
        """Allocate the next code for a year.

        Args:
            session: Session of the admitting transaction.
            year: Year to allocate in; defaults to the current year.

        Returns:
            A code no other committed or in-flight enrollment has been given.

        Raises:
            AllocationExhaustedError: If the year's sequence is used up.
        """
        year = year if year is not None else self.current_year()
        sequence = await self._next_value(session, year)
        if sequence > MAX_SEQUENCE:
            logger.error("Enrollment code sequence exhausted: prefix=%s, year=%d", self.prefix, year)
            raise AllocationExhaustedError(f"sequence for {self.prefix}-{year} exceeded {MAX_SEQUENCE}")

        code = format_code(self.prefix, year, sequence)
        logger.debug("Allocated enrollment code: %s", code)
        return code

    async def _next_value(self, session: AsyncSession, year: int) -> int:
        for _ in range(_COUNTER_CREATE_ATTEMPTS):
            result = await session.execute(
                update(EnrollmentCodeCounter)
                .where(
                    EnrollmentCodeCounter.prefix == self.prefix,
                    EnrollmentCodeCounter.year == year,
                )
                .values(last_value=EnrollmentCodeCounter.last_value + 1)
                .returning(EnrollmentCodeCounter.last_value)
                .execution_options(synchronize_session=False)
            )
            value = result.scalar_one_or_none()
            if value is not None:
                return value

            await self._create_counter(session, year)

        raise AllocationExhaustedError(f"counter row for {self.prefix}-{year} could not be created")

    async def _create_counter(self, session: AsyncSession, year: int) -> None:
        highest = await self._highest_stored_sequence(session, year)
        try:
            async with session.begin_nested():
                session.add(EnrollmentCodeCounter(prefix=self.prefix, year=year, last_value=highest))
            logger.info(
                "Created enrollment code counter: prefix=%s, year=%d, seeded_at=%d",
                self.prefix,
                year,
                highest,
            )
        except IntegrityError:
            # Created concurrently by another transaction.
            logger.debug("Enrollment code counter already exists: prefix=%s, year=%d", self.prefix, year)

    async def _highest_stored_sequence(self, session: AsyncSession, year: int) -> int:
        result = await session.execute(
            select(func.max(Enrollment.code)).where(Enrollment.code.like(f"{self.prefix}-{year}-%"))
        )
        highest_code = result.scalar_one_or_none()
        if highest_code is None:
            return 0
        try:
            return parse_code(highest_code).sequence
        except ValueError:
            logger.warning("Ignoring malformed stored enrollment code: %s", highest_code)
            return 0

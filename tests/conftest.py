# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and fixtures for CourseDesk tests.

Ledger behaviour is exercised against an in-memory SQLite store built
with the application's own engine factory. Every ledger call opens a
fresh session, the same way each API request gets its own.
"""

from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Callable
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from coursedesk.core.config.settings import DatabaseSettings, LedgerSettings, Settings
from coursedesk.domains.audit import ActorContext, AuditRecord
from coursedesk.domains.enrollment import EnrollmentLedger, RemovedEnrollment
from coursedesk.infrastructure.database.connection import build_engine, build_sessionmaker
from coursedesk.infrastructure.database.models import (
    Base,
    Course,
    Enrollment,
    EnrollmentCodeCounter,
    Participant,
)
from coursedesk.models.enrollment import (
    AdmissionRequest,
    EnrollmentResponse,
    EnrollmentUpdateRequest,
)


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: mark test as unit test")
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")


@pytest.fixture
def test_environment() -> dict[str, str]:
    """Environment variables for a self-contained test run."""
    return {
        "ENVIRONMENT": "development",
        "DEBUG": "false",
        "DB_URL": "sqlite+aiosqlite:///:memory:",
        "JWT_SECRET_KEY": "test-secret-key-for-jwt-testing",
        "LEDGER_CODE_PREFIX": "INS",
        "AUDIT_ENABLED": "false",
    }


# =========================================================================
# Doubles
# =========================================================================


class FrozenClock:
    """Clock returning a fixed, adjustable instant."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class RecordingAuditSink:
    """Audit sink keeping every record in memory."""

    def __init__(self) -> None:
        self.records: list[AuditRecord] = []

    async def record(self, record: AuditRecord) -> None:
        self.records.append(record)

    @property
    def actions(self) -> list[str]:
        return [r.action for r in self.records]


class FailingAuditSink:
    """Audit sink that always fails."""

    def __init__(self) -> None:
        self.calls = 0

    async def record(self, record: AuditRecord) -> None:
        self.calls += 1
        raise RuntimeError("audit store unavailable")


@pytest.fixture
def clock() -> FrozenClock:
    """Clock fixed at 2025-03-10 15:00 UTC."""
    return FrozenClock(datetime(2025, 3, 10, 15, 0, tzinfo=timezone.utc))


@pytest.fixture
def audit_sink() -> RecordingAuditSink:
    """Create a recording audit sink."""
    return RecordingAuditSink()


@pytest.fixture
def failing_audit_sink() -> FailingAuditSink:
    """Create an audit sink that raises on every record."""
    return FailingAuditSink()


@pytest.fixture
def actor() -> ActorContext:
    """Create the registrar performing ledger operations."""
    return ActorContext(
        user_id=str(uuid4()),
        email="registrar@coursedesk.test",
        role="ADMIN",
        ip_address="203.0.113.7",
        user_agent="pytest",
    )


# =========================================================================
# Store
# =========================================================================


@pytest.fixture
def sqlite_settings() -> Settings:
    """Settings pointing at a private in-memory SQLite store."""
    return Settings(
        environment="development",
        debug=False,
        database=DatabaseSettings(url_override="sqlite+aiosqlite:///:memory:"),
    )


@pytest_asyncio.fixture
async def engine(sqlite_settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    """Create the in-memory store with every table."""
    engine = build_engine(sqlite_settings)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the sessionmaker bound to the test store."""
    return build_sessionmaker(engine)


@pytest.fixture
def course_factory(session_factory: async_sessionmaker[AsyncSession]) -> Callable[..., Any]:
    """Factory inserting courses."""

    async def create(
        max_seats: int | None = 10,
        filled_seats: int = 0,
        title: str = "Tributación para MYPEs",
    ) -> Course:
        async with session_factory() as session:
            course = Course(title=title, max_seats=max_seats, filled_seats=filled_seats)
            session.add(course)
            await session.commit()
            return course

    return create


@pytest.fixture
def participant_factory(session_factory: async_sessionmaker[AsyncSession]) -> Callable[..., Any]:
    """Factory inserting participants with unique document numbers."""

    async def create(first_names: str = "Rosa", last_names: str = "Quispe Mamani") -> Participant:
        async with session_factory() as session:
            participant = Participant(
                document_type="DNI",
                document_number=uuid4().hex[:8],
                first_names=first_names,
                last_names=last_names,
                email=f"{uuid4().hex[:6]}@example.pe",
            )
            session.add(participant)
            await session.commit()
            return participant

    return create


@pytest.fixture
def enrollment_factory(session_factory: async_sessionmaker[AsyncSession]) -> Callable[..., Any]:
    """Factory inserting enrollment rows directly, bypassing the ledger."""

    async def create(participant_id: str, course_id: str, code: str) -> Enrollment:
        async with session_factory() as session:
            enrollment = Enrollment(
                code=code,
                participant_id=participant_id,
                course_id=course_id,
                registrar_id="import",
            )
            session.add(enrollment)
            await session.commit()
            return enrollment

    return create


@pytest.fixture
def counter_factory(session_factory: async_sessionmaker[AsyncSession]) -> Callable[..., Any]:
    """Factory inserting enrollment code counter rows."""

    async def create(year: int, last_value: int, prefix: str = "INS") -> None:
        async with session_factory() as session:
            session.add(EnrollmentCodeCounter(prefix=prefix, year=year, last_value=last_value))
            await session.commit()

    return create


# =========================================================================
# Ledger
# =========================================================================


class LedgerHarness:
    """Runs each ledger operation in its own session and reads back state."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        audit_sink: Any,
        clock: FrozenClock,
        actor: ActorContext,
    ) -> None:
        self.session_factory = session_factory
        self.audit_sink = audit_sink
        self.clock = clock
        self.actor = actor
        self.settings = LedgerSettings()

    def ledger(self, session: AsyncSession) -> EnrollmentLedger:
        return EnrollmentLedger(
            session,
            settings=self.settings,
            audit_sink=self.audit_sink,
            clock=self.clock,
        )

    async def admit(self, participant_id: str, course_id: str, **fields: Any) -> EnrollmentResponse:
        request = AdmissionRequest(participant_id=participant_id, course_id=course_id, **fields)
        async with self.session_factory() as session:
            return await self.ledger(session).admit(request, self.actor)

    async def update(self, enrollment_id: str, **fields: Any) -> EnrollmentResponse:
        request = EnrollmentUpdateRequest(**fields)
        async with self.session_factory() as session:
            return await self.ledger(session).update(enrollment_id, request, self.actor)

    async def remove(self, enrollment_id: str) -> RemovedEnrollment:
        async with self.session_factory() as session:
            return await self.ledger(session).remove(enrollment_id, self.actor)

    async def filled_seats(self, course_id: str) -> int:
        async with self.session_factory() as session:
            result = await session.execute(select(Course.filled_seats).where(Course.id == course_id))
            return result.scalar_one()

    async def enrollment_count(self, course_id: str | None = None) -> int:
        async with self.session_factory() as session:
            query = select(func.count()).select_from(Enrollment)
            if course_id:
                query = query.where(Enrollment.course_id == course_id)
            return (await session.execute(query)).scalar_one()

    async def counter_value(self, year: int, prefix: str = "INS") -> int | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(EnrollmentCodeCounter.last_value).where(
                    EnrollmentCodeCounter.prefix == prefix,
                    EnrollmentCodeCounter.year == year,
                )
            )
            return result.scalar_one_or_none()


@pytest.fixture
def ledger_harness(
    session_factory: async_sessionmaker[AsyncSession],
    audit_sink: RecordingAuditSink,
    clock: FrozenClock,
    actor: ActorContext,
) -> LedgerHarness:
    """Create a ledger harness over the in-memory store."""
    return LedgerHarness(session_factory, audit_sink, clock, actor)

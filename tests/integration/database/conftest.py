# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest fixtures for database integration tests.

Points the shared store fixtures at a real PostgreSQL database so that
concurrent ledger operations contend for real row locks. Requires
TEST_DATABASE_URL (an asyncpg URL); the tests are skipped without it.
"""

import os
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine

from coursedesk.core.config.settings import DatabaseSettings, Settings
from coursedesk.infrastructure.database.connection import build_engine
from coursedesk.infrastructure.database.models import Base


@pytest.fixture(scope="session")
def database_url() -> str:
    """Get the PostgreSQL URL for tests."""
    url = os.environ.get("TEST_DATABASE_URL")
    if not url:
        pytest.skip("TEST_DATABASE_URL not set")
    return url


@pytest_asyncio.fixture(scope="function")
async def engine(database_url: str) -> AsyncGenerator[AsyncEngine, None]:
    """Create async engine with a fresh schema."""
    settings = Settings(
        debug=False,
        database=DatabaseSettings(url_override=database_url, pool_size=20, max_overflow=10),
    )
    engine = build_engine(settings)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()

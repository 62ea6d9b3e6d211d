# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Alembic environment for the CourseDesk schema.

The target URL is taken from the application settings (``DB_URL`` or the
``DB_*`` components), never from ``alembic.ini``, so migrations run
against the same store as the service. On PostgreSQL the migration
session uses the ledger's ``lock_timeout``: a migration waiting on a
table held by live admissions fails instead of queueing every request
behind it.

Usage:
    alembic upgrade head
    alembic upgrade head --sql    # offline, print the DDL
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine

from coursedesk.core.config import get_settings
from coursedesk.infrastructure.database.models import Base

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

settings = get_settings()


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=Base.metadata,
        compare_type=True,
        compare_server_default=True,
        **kwargs,
    )


def run_offline() -> None:
    """Render the migration SQL without a database connection."""
    _configure(
        url=settings.database.sync_url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def _run_on_connection(connection: Connection) -> None:
    if connection.dialect.name == "postgresql":
        connection.exec_driver_sql(f"SET lock_timeout = {settings.database.lock_timeout_ms}")
        # Session-level setting; end the autobegun transaction so Alembic owns the next one.
        connection.commit()

    _configure(
        connection=connection,
        render_as_batch=connection.dialect.name == "sqlite",
    )
    with context.begin_transaction():
        context.run_migrations()


async def run_online() -> None:
    """Apply migrations over a short-lived async engine."""
    engine = create_async_engine(settings.database.url, poolclass=pool.NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_run_on_connection)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    run_offline()
else:
    asyncio.run(run_online())

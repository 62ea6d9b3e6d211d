# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Database connection management using SQLAlchemy async.

PostgreSQL (asyncpg) is the production store. Server-side
``statement_timeout`` and ``lock_timeout`` are applied to every pooled
connection so that a stuck seat claim or counter lock cannot hold a
request forever.

SQLite (aiosqlite) is supported for local runs and tests. pysqlite's
implicit transaction handling is disabled and an explicit
``BEGIN IMMEDIATE`` is emitted instead, so transactions and savepoints
behave as on PostgreSQL. The pool holds a single connection: a session
owns it from its first statement until commit or rollback, and other
sessions wait for it, so concurrent transactions never interleave on the
one SQLite handle.

Example:
    from coursedesk.infrastructure.database.connection import (
        init_database,
        get_session,
    )

    # Initialize at application startup
    await init_database(settings)

    # Use in request handlers
    async with get_session() as session:
        result = await session.execute(select(Course))
        courses = result.scalars().all()
"""

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, AsyncIterator, Optional

from sqlalchemy import event, text
from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool

if TYPE_CHECKING:
    from coursedesk.core.config.settings import Settings

# Module-level state for the database connection
_engine: Optional[AsyncEngine] = None
_sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None

# query_canceled, lock_not_available
TIMEOUT_SQLSTATES = frozenset({"57014", "55P03"})


class DatabaseError(Exception):
    """Base exception for database operations.

    Attributes:
        message: Human-readable error description.
        original_error: The underlying SQLAlchemy or database error.
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        """Initialize the database error.

        Args:
            message: Human-readable error description.
            original_error: The underlying exception that caused this error.
        """
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


def is_timeout_error(error: BaseException) -> bool:
    """Check whether a driver error means a statement or lock timed out.

    Args:
        error: Exception raised by SQLAlchemy.

    Returns:
        True for PostgreSQL cancellations and lock timeouts, and for
        SQLite's "database is locked".
    """
    if not isinstance(error, DBAPIError):
        return False

    orig = error.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in TIMEOUT_SQLSTATES:
        return True

    # asyncpg errors are wrapped by the SQLAlchemy adapter; the original
    # exception is exposed as __cause__.
    cause = getattr(orig, "__cause__", None)
    if getattr(cause, "sqlstate", None) in TIMEOUT_SQLSTATES:
        return True

    return isinstance(error, OperationalError) and "database is locked" in str(orig)


def _install_sqlite_transaction_hooks(engine: AsyncEngine) -> None:
    """Make pysqlite honour BEGIN/SAVEPOINT the way PostgreSQL does."""

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(settings: "Settings") -> AsyncEngine:
    """Create an async engine for the configured store.

    Args:
        settings: Application settings containing database configuration.

    Returns:
        A configured AsyncEngine.
    """
    db = settings.database

    if db.is_sqlite:
        # One connection for the whole process; it also keeps an in-memory
        # database alive until the engine is disposed.
        kwargs: dict[str, Any] = {
            "echo": settings.debug and settings.log_level == "DEBUG",
            "poolclass": AsyncAdaptedQueuePool,
            "pool_size": 1,
            "max_overflow": 0,
            "pool_timeout": db.statement_timeout_ms / 1000,
        }
        if ":memory:" in db.url or db.url.rstrip("/").endswith("sqlite+aiosqlite:"):
            kwargs["connect_args"] = {"check_same_thread": False}
        engine = create_async_engine(db.url, **kwargs)
        _install_sqlite_transaction_hooks(engine)
        return engine

    return create_async_engine(
        db.url,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_pre_ping=True,
        pool_recycle=1800,
        echo=settings.debug and settings.log_level == "DEBUG",
        connect_args={
            "server_settings": {
                "statement_timeout": str(db.statement_timeout_ms),
                "lock_timeout": str(db.lock_timeout_ms),
            }
        },
    )


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the sessionmaker used for one-request-one-transaction work."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_database(settings: "Settings") -> None:
    """Initialize the database connection pool.

    This should be called once at application startup.

    Args:
        settings: Application settings containing database configuration.

    Raises:
        DatabaseError: If connection pool creation fails.
    """
    global _engine, _sessionmaker

    try:
        _engine = build_engine(settings)
        _sessionmaker = build_sessionmaker(_engine)
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to initialize database connection", e) from e


async def close_database() -> None:
    """Close the database connection pool.

    This should be called at application shutdown.
    """
    global _engine, _sessionmaker

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _sessionmaker = None


def get_engine() -> AsyncEngine:
    """Get the async engine.

    Returns:
        The SQLAlchemy async engine.

    Raises:
        DatabaseError: If the database has not been initialized.
    """
    if _engine is None:
        raise DatabaseError("Database not initialized. Call init_database() first.")
    return _engine


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    """Get the sessionmaker.

    Returns:
        The SQLAlchemy async sessionmaker.

    Raises:
        DatabaseError: If the database has not been initialized.
    """
    if _sessionmaker is None:
        raise DatabaseError("Database not initialized. Call init_database() first.")
    return _sessionmaker


@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    """Get an async session.

    The session is committed on success and rolled back on exception.
    Work that commits on its own (the enrollment ledger) leaves nothing
    pending, so the final commit is a no-op for it.

    Yields:
        AsyncSession for database operations.

    Raises:
        DatabaseError: If the database has not been initialized or
            if a database operation fails.
    """
    sessionmaker = get_sessionmaker()

    async with sessionmaker() as session:
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            raise DatabaseError("Database operation failed", e) from e
        except Exception:
            await session.rollback()
            raise


async def create_all() -> None:
    """Create every table registered on the model metadata.

    Used for development bootstrapping and tests; deployed databases are
    managed by Alembic.
    """
    from coursedesk.infrastructure.database.models import Base

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def check_database_connection() -> bool:
    """Check if the database is reachable.

    Returns:
        True if the database is reachable, False otherwise.
    """
    if _engine is None:
        return False

    try:
        async with _engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        return False

"""
Database session configuration.

This module handles database engine creation, session management and the
transaction boundary used by every mutating fee operation.
"""

import logging
from contextlib import asynccontextmanager

from sqlalchemy import event
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base

from campus_fees.app.core.config import settings
from campus_fees.app.core.exceptions import AppException, TransactionFailedError

logger = logging.getLogger("campus_fees.db")


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"echo": settings.db_echo, "future": True}
    return {
        "echo": settings.db_echo,
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "future": True,
    }


def enable_sqlite_savepoints(async_engine: AsyncEngine) -> None:
    """
    Let pysqlite/aiosqlite honour SAVEPOINTs.

    The driver's own transaction handling defers BEGIN and would commit the
    outer transaction on RELEASE SAVEPOINT. We disable it and emit BEGIN
    ourselves.
    """
    @event.listens_for(async_engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(async_engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


# Create async engine
engine = create_async_engine(settings.database_url, **_engine_options(settings.database_url))

if settings.database_url.startswith("sqlite"):
    enable_sqlite_savepoints(engine)

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

# Create declarative base for models
Base = declarative_base()


async def get_db():
    """
    FastAPI dependency for database sessions.

    Yields an async database session and ensures it's properly closed.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


@asynccontextmanager
async def atomic(db: AsyncSession):
    """
    Run a block as one all-or-nothing unit of work.

    Commits on success. On any exception the session is rolled back, so no
    partial state is ever visible. Domain errors propagate unchanged; raw
    storage failures surface as TransactionFailedError.
    """
    try:
        yield db
        await db.commit()
    except AppException:
        await db.rollback()
        raise
    except IntegrityError as exc:
        await db.rollback()
        logger.warning("Transaction rejected by constraint", extra={"error": str(exc.orig)})
        raise TransactionFailedError("Operation conflicts with existing data") from exc
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("Transaction aborted", extra={"error": str(exc)})
        raise TransactionFailedError() from exc
    except BaseException:
        await db.rollback()
        raise

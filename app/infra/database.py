"""
Database engine and sessions.

One AsyncSession per request. The mediation store commits its reads before
the model call and before status long-polls (SqlAlchemyMediationStore.release),
then a turn's messages, the partner summary and the shared solution entry
are committed together when the request succeeds.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.config import settings
from app.models.database import Base

logger = logging.getLogger(__name__)


engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_size=settings.database_pool_size,
    max_overflow=settings.database_max_overflow,
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


@asynccontextmanager
async def get_db_context() -> AsyncGenerator[AsyncSession, None]:
    """
    Transactional session outside the request lifecycle.

    Commits when the block exits cleanly, rolls back otherwise.

    Usage:
        async with get_db_context() as db:
            store = SqlAlchemyMediationStore(db)
            session = await store.get_session(session_id)
    """
    session = async_session_factory()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency providing the request's session.

    Mediation errors raised by the route still propagate here, so a failed
    turn leaves nothing behind.
    """
    async with get_db_context() as session:
        yield session


async def init_db() -> None:
    """
    Create the chat_sessions, chat_messages and summaries tables.

    Development only; existing tables are left untouched.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose of the connection pool on shutdown."""
    await engine.dispose()


async def check_db_health() -> bool:
    """True if PostgreSQL answers a trivial query."""
    try:
        async with get_db_context() as db:
            await db.execute(text("SELECT 1"))
        return True
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Database health check failed: {e}")
        return False

"""
Database session management with SQLAlchemy async
"""

from typing import AsyncIterator, Optional

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool
from core.config import settings
import logging

logger = logging.getLogger(__name__)


def build_engine(url: Optional[str] = None, pool_size: Optional[int] = None) -> AsyncEngine:
    """Create an async engine; SQLite URLs run without a connection pool."""
    url = url or settings.DATABASE_URL

    if url.startswith("sqlite"):
        return create_async_engine(url, poolclass=NullPool)

    return create_async_engine(
        url,
        pool_size=pool_size or settings.DATABASE_POOL_SIZE,
        pool_pre_ping=True,
    )


def build_session_maker(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = build_engine()
async_session_maker = build_session_maker(engine)


def dialect_insert(session: AsyncSession, model):
    """
    Return the dialect-specific INSERT construct for ``model``.

    Both PostgreSQL and SQLite support ``on_conflict_do_nothing`` and
    ``on_conflict_do_update``; every idempotent write goes through here.
    """
    dialect_name = session.get_bind().dialect.name
    if dialect_name == "postgresql":
        return postgresql.insert(model)
    if dialect_name == "sqlite":
        return sqlite.insert(model)
    raise NotImplementedError(f"Unsupported database dialect: {dialect_name}")


async def get_session() -> AsyncIterator[AsyncSession]:
    """Get database session"""
    async with async_session_maker() as session:
        yield session

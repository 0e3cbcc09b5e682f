"""Async SQLAlchemy engine and request-scoped session."""
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from core.config import get_settings


settings = get_settings()

engine = create_async_engine(
    settings.database_url,
    echo=False,
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_async_session() -> AsyncGenerator[AsyncSession]:
    """
    Yield a session that commits when the request succeeds.

    The commit after `yield` runs once the response has been sent, so routes
    that write call `await db.commit()` themselves before building their
    response; a failed commit then reaches the client as a 500. Any exception
    (including AppError raised for a 4xx response) rolls back whatever the
    request had not explicitly committed.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise

"""Async database engine and session management.

Configures the SQLAlchemy async engine and exposes two seams:
- ``get_db``: request-scoped session (commit on success, rollback on error)
- ``get_session_factory``: factory handed to work that outlives the request
  (the post-acknowledgement issuance pipeline opens its own sessions)
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=settings.environment == "development",
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency that provides a database session."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Dependency that provides the session factory for background work.

    Background tasks run after the request-scoped session is closed, so
    they must not borrow it.
    """
    return async_session_factory

"""
Database configuration.

Async SQLAlchemy engine and session factory.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.config.settings import settings


def create_engine(database_url: str | None = None) -> AsyncEngine:
    """
    Create async engine.

    Pool sizing is only applied to server databases; SQLite uses the
    dialect default pool.

    Args:
        database_url: Override for settings.database_url

    Returns:
        Configured AsyncEngine
    """
    url = database_url or settings.database_url
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=settings.database_echo)

    return create_async_engine(
        url,
        echo=settings.database_echo,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
        pool_recycle=1800,
    )


def create_session_maker(
    engine: AsyncEngine,
) -> async_sessionmaker[AsyncSession]:
    """Create session factory bound to engine."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async_engine = create_engine()
async_session_maker = create_session_maker(async_engine)

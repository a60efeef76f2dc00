"""
Database session configuration.

Async SQLAlchemy engine and session factory for the tracking store.
PostgreSQL (asyncpg) in deployment, SQLite (aiosqlite) in tests.
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from qmuter.app.core.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=settings.db_echo,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    future=True,
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

Base = declarative_base()


async def init_models() -> None:
    """Create the tracking and notification tables if they are missing."""
    # Model modules register themselves on Base when imported
    from qmuter.app.models import tracking_session, notification  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db():
    """
    FastAPI dependency for database sessions.
    
    Yields an async session; an open transaction is rolled back if the
    request handler raises before committing.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

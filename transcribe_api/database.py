"""
Database engine and session management
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from transcribe_api.config import settings


def create_engine(database_url: str, echo: bool = False, **kwargs) -> AsyncEngine:
    """Create an async engine for the usage store."""
    return create_async_engine(database_url, echo=echo, pool_pre_ping=True, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async_engine = create_engine(settings.database_url, echo=settings.debug)

AsyncSessionLocal = create_session_factory(async_engine)


class Base(DeclarativeBase):
    """Base class for all models"""

    pass


async def init_db(engine: AsyncEngine = async_engine) -> None:
    """Create all tables"""
    # Register models on the metadata before create_all
    from transcribe_api import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose of the connection pool"""
    await async_engine.dispose()

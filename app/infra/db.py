"""
Database infrastructure

Async SQLAlchemy engine, session factory and FastAPI session dependency.
"""

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)


def build_engine(database_url: str, **kwargs) -> AsyncEngine:
    """Create an async engine; pool sizing only applies to server databases"""
    options = {"echo": settings.db_echo, "pool_pre_ping": True}
    if not database_url.startswith("sqlite"):
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
        )
    options.update(kwargs)
    return create_async_engine(database_url, **options)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.database_url)
AsyncSessionLocal = build_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a session per request; uncommitted work is rolled back on exit"""
    async with AsyncSessionLocal() as session:
        yield session


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for long-lived handlers (WebSocket) that open a session per event"""
    return AsyncSessionLocal


async def create_all_tables(bind: AsyncEngine = engine) -> None:
    """Create tables from the ORM metadata (development/tests; production uses alembic)"""
    from app.models import Base

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("db.create_all")


async def close_db_connection() -> None:
    await engine.dispose()
    logger.info("db.disposed")

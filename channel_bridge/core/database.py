"""Database connection and session management.

Transaction Guarantees:
- Each store operation gets its own session
- All statements within one operation are atomic
- On any exception, the entire transaction is rolled back
- Sessions are properly closed after each operation
"""

from typing import Any
import logging

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine, with connection pooling for PostgreSQL."""
    engine_kwargs: dict[str, Any] = {"echo": echo}
    if database_url.startswith("postgresql"):
        engine_kwargs.update(
            pool_size=10,
            max_overflow=20,
            pool_pre_ping=True,  # Check connection health before use
            pool_recycle=300,
            pool_timeout=30,
        )
    return create_async_engine(database_url, **engine_kwargs)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,  # Don't expire objects after commit
        autoflush=False,
    )


logger.info(f"Async Database URL (masked): {settings.database_url_async[:40]}...")

engine = build_engine(settings.database_url_async, echo=settings.database_echo)


async def init_db(bind: AsyncEngine | None = None) -> None:
    """Initialize database (create tables if needed)."""
    from ..models import Base

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()

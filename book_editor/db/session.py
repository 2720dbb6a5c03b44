"""
Async engine and session factory for the credential store and usage ledger.

Both are created on first use so importing the app (or a Celery task module)
never opens a connection. Celery workers call ``dispose_engine`` after each
task because every ``asyncio.run`` gets a fresh event loop.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from book_editor.config import settings

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None
_AsyncSessionLocal: async_sessionmaker[AsyncSession] | None = None


def _engine_options(database_url: str) -> dict:
    options = {"echo": settings.debug}
    if database_url.startswith("sqlite"):
        # aiosqlite has no connection pool to tune; wait on locked writers instead
        options["connect_args"] = {"timeout": 30}
        return options
    options.update(
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_pre_ping=True,
        pool_recycle=300,
        pool_use_lifo=True,
        pool_reset_on_return="rollback",
    )
    return options


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        logger.info("Creating async database engine")
        _engine = create_async_engine(
            settings.database_url, **_engine_options(settings.database_url)
        )
    return _engine


def get_session_local() -> async_sessionmaker[AsyncSession]:
    global _AsyncSessionLocal
    if _AsyncSessionLocal is None:
        _AsyncSessionLocal = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autocommit=False,
            autoflush=False,
        )
    return _AsyncSessionLocal


async def get_db():
    """Request-scoped session. Uncommitted work is rolled back when the request fails."""
    AsyncSessionLocal = get_session_local()
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def dispose_engine() -> None:
    global _engine, _AsyncSessionLocal
    if _engine is not None:
        await _engine.dispose()
        logger.info("Database engine disposed")
    _engine = None
    _AsyncSessionLocal = None

"""Process-wide async engine for StockAlert.

Gateway callbacks, background distribution jobs and the periodic session
sweep draw connections from the same pool.  The engine is created on first
use; the FastAPI lifespan and the cleanup CLI call ``dispose_engine()`` on
the way out.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from stockalert_db.config import get_async_url, get_pool_settings

APPLICATION_NAME = "stockalert"

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        pool = get_pool_settings()
        _engine = create_async_engine(
            get_async_url(),
            echo=pool.echo,
            pool_size=pool.size,
            max_overflow=pool.max_overflow,
            pool_recycle=pool.recycle_seconds,
            # Idle connections can be dropped between bursts of USSD traffic
            pool_pre_ping=True,
            connect_args={"server_settings": {"application_name": APPLICATION_NAME}},
        )
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for request handlers and background jobs.

    Rows stay loaded after commit so a distribution job scheduled from a
    callback can read the alert it was handed.
    """
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            bind=get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _session_factory


async def dispose_engine() -> None:
    """Close pooled connections and forget the engine."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None

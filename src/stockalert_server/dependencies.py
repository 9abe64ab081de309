"""FastAPI dependency injection — DB sessions, SDK singletons and admin auth.

Each request that touches the database gets a fresh ``AsyncSession`` via
``get_db()``.  The session is committed on success and rolled back on error,
matching the SDK convention where managers and repositories call
``flush()`` but never ``commit()``.
"""

import hmac
from typing import AsyncGenerator

from fastapi import Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from stockalert_db.engine import get_session_factory
from stockalert_ussd.dispatcher import DistributionWorker
from stockalert_ussd.lifecycle import UssdSessionManager

from stockalert_server.config import ServerSettings


# ------------------------------------------------------------------
# Database session (transaction boundary)
# ------------------------------------------------------------------

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async DB session; commit on success, rollback on error."""
    factory = get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# ------------------------------------------------------------------
# SDK singletons stashed on app.state during lifespan
# ------------------------------------------------------------------

def get_settings(request: Request) -> ServerSettings:
    return request.app.state.settings


def get_session_manager(request: Request) -> UssdSessionManager:
    """Return the session manager singleton from ``app.state``."""
    return request.app.state.session_manager


def get_worker(request: Request) -> DistributionWorker:
    """Return the distribution worker singleton from ``app.state``."""
    return request.app.state.worker


# ------------------------------------------------------------------
# Admin auth via X-Admin-Key header
# ------------------------------------------------------------------

async def require_admin_key(
    request: Request,
    x_admin_key: str | None = Header(None, alias="X-Admin-Key"),
) -> str:
    """Validate ``X-Admin-Key`` against the configured ``ADMIN_API_KEY``.

    Raises 403 when admin endpoints are disabled or the key is wrong,
    401 when the header is missing.
    """
    expected: str | None = request.app.state.settings.admin_api_key
    if not expected:
        raise HTTPException(
            status_code=403,
            detail="Admin endpoints are disabled (ADMIN_API_KEY not configured)",
        )
    if not x_admin_key:
        raise HTTPException(status_code=401, detail="X-Admin-Key header is required")
    # Constant-time comparison to prevent timing side-channels.
    if not hmac.compare_digest(x_admin_key, expected):
        raise HTTPException(status_code=403, detail="Invalid admin key")
    return x_admin_key

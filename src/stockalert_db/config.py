"""Connection settings for the StockAlert PostgreSQL database.

The USSD callback, the distribution worker and the stale-session sweep all
share one database.  Connection details come from the environment, either as
one ``DATABASE_URL`` (hosted deployments) or as ``PG_HOST``/``PG_PORT``/
``PG_USER``/``PG_PASSWORD``/``PG_DATABASE`` parts (docker-compose).

Alembic needs the plain ``postgresql://`` form; the runtime engine needs
``postgresql+asyncpg://``.  Both are derived from the same source.
"""

import os
from dataclasses import dataclass

_SYNC_SCHEME = "postgresql://"
_ASYNC_SCHEME = "postgresql+asyncpg://"

# Hosting platforms still hand out the pre-1.4 scheme
_LEGACY_SCHEME = "postgres://"


@dataclass(frozen=True)
class PoolSettings:
    """Connection pool sizing for the async engine."""

    size: int = 5
    max_overflow: int = 10
    recycle_seconds: int = 1800
    echo: bool = False


def _build_url_from_parts() -> str:
    host = os.getenv("PG_HOST", "localhost")
    port = os.getenv("PG_PORT", "5432")
    user = os.getenv("PG_USER", "stockalert")
    password = os.getenv("PG_PASSWORD", "stockalert")
    database = os.getenv("PG_DATABASE", "stockalert")
    return f"{_SYNC_SCHEME}{user}:{password}@{host}:{port}/{database}"


def _base_url() -> str:
    """The configured URL with the scheme normalised to ``postgresql://``."""
    url = os.getenv("DATABASE_URL")
    if not url:
        return _build_url_from_parts()
    for scheme in (_ASYNC_SCHEME, _LEGACY_SCHEME):
        if url.startswith(scheme):
            return _SYNC_SCHEME + url[len(scheme):]
    return url


def get_sync_url() -> str:
    """Return the psycopg2 URL used by Alembic migrations."""
    return _base_url()


def get_async_url() -> str:
    """Return the asyncpg URL used by the application engine."""
    url = _base_url()
    if url.startswith(_SYNC_SCHEME):
        return _ASYNC_SCHEME + url[len(_SYNC_SCHEME):]
    return url


def get_pool_settings() -> PoolSettings:
    """Read pool sizing from ``PG_POOL_SIZE``, ``PG_MAX_OVERFLOW``,
    ``PG_POOL_RECYCLE`` and ``PG_ECHO``."""
    defaults = PoolSettings()
    return PoolSettings(
        size=int(os.getenv("PG_POOL_SIZE", defaults.size)),
        max_overflow=int(os.getenv("PG_MAX_OVERFLOW", defaults.max_overflow)),
        recycle_seconds=int(os.getenv("PG_POOL_RECYCLE", defaults.recycle_seconds)),
        echo=os.getenv("PG_ECHO", "").lower() in ("1", "true", "yes"),
    )

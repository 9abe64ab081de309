"""Stale-session CLI — ``stockalert-cleanup``.

Marks active USSD sessions whose ``expires_at`` has passed as ``expired``.
Expiry is otherwise checked lazily on the next request, so this job is
only housekeeping for dashboards and audits.  Rows are never deleted.

Examples::

    # One-off sweep
    uv run stockalert-cleanup

    # Sweep every 5 minutes until interrupted
    uv run stockalert-cleanup --interval 300
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)


async def expire_once(factory: async_sessionmaker[AsyncSession]) -> int:
    """Run one sweep in its own session and commit.  Returns rows affected."""
    from stockalert_db.repository import SessionRepository

    async with factory() as db:
        affected = await SessionRepository().expire_stale_sessions(db)
        await db.commit()
    if affected:
        logger.info("Cleanup complete: expired_sessions=%d", affected)
    return affected


async def periodic_cleanup(
    factory: async_sessionmaker[AsyncSession], interval_seconds: int
) -> None:
    """Best-effort loop started by the app lifespan; errors are logged and retried."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await expire_once(factory)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Periodic session cleanup failed")


async def run_cleanup(*, interval_seconds: int = 0) -> int:
    """Execute the sweep (once, or forever with an interval).

    Creates its own engine and disposes it on exit.
    """
    # Lazy imports to avoid loading DB machinery at module import time
    from stockalert_db.engine import dispose_engine, get_session_factory

    factory = get_session_factory()
    try:
        affected = await expire_once(factory)
        if interval_seconds > 0:
            await periodic_cleanup(factory, interval_seconds)
        return affected
    finally:
        await dispose_engine()


def cli() -> None:
    """Console-script entry point: ``stockalert-cleanup``."""
    parser = argparse.ArgumentParser(
        prog="stockalert-cleanup",
        description="Mark expired StockAlert USSD sessions.",
    )
    parser.add_argument(
        "--interval",
        type=int,
        default=0,
        help="Repeat every N seconds (default: 0, run once)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    try:
        affected = asyncio.run(run_cleanup(interval_seconds=args.interval))
    except KeyboardInterrupt:
        sys.exit(0)

    print(f"Expired sessions: {affected}")
    sys.exit(0)

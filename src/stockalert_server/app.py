"""Application factory and CLI entry point.

``create_app()`` builds the FastAPI application with:
  - Lifespan handler that wires the SDK (gateways, dispatcher, worker,
    session manager) once and optionally starts the cleanup loop
  - CORS middleware
  - Global exception handlers (SDK ValueError -> 404/409/400)
  - All API routes mounted under ``/api/v1``
  - A ``/health`` endpoint for readiness probes

The ``cli()`` function is the ``stockalert-server`` console-script entry point.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from stockalert_db.engine import dispose_engine, get_engine, get_session_factory
from stockalert_ussd.alerts import AlertService
from stockalert_ussd.dispatcher import DistributionDispatcher, DistributionWorker
from stockalert_ussd.eligibility import SupplierEligibilityEvaluator
from stockalert_ussd.gateways import (
    AfricasTalkingAirtimeGateway,
    AfricasTalkingSMSGateway,
    HttpEmailGateway,
)
from stockalert_ussd.lifecycle import UssdSessionManager

from stockalert_server.cleanup import periodic_cleanup
from stockalert_server.config import ServerSettings, load_settings
from stockalert_server.errors import generic_error_handler, value_error_handler
from stockalert_server.routes import register_routes

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Lifespan: runs once at startup/shutdown
# ------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Initialise shared resources at startup, tear down on shutdown.

    Startup:
      1. Build the gateway clients from the injected config
      2. Build dispatcher, worker, alert service and session manager
      3. Stash them on ``app.state`` for dependency injection
      4. Start the periodic cleanup task when an interval is configured

    Shutdown:
      1. Cancel the cleanup task
      2. Close gateway HTTP clients
      3. Dispose the database engine's connection pool
    """
    settings: ServerSettings = app.state.settings
    factory = get_session_factory()

    # --- Gateways ---
    sms = AfricasTalkingSMSGateway(settings.africastalking)
    email = HttpEmailGateway(settings.email)
    airtime = AfricasTalkingAirtimeGateway(
        settings.africastalking, currency=settings.ussd.currency,
    )
    if not settings.africastalking.api_key:
        logger.warning("AT_API_KEY not set; SMS and airtime will be recorded as failed")

    # --- SDK ---
    evaluator = SupplierEligibilityEvaluator(
        timezone_name=settings.ussd.business_timezone,
        unit_price=settings.ussd.estimated_unit_price,
    )
    dispatcher = DistributionDispatcher(sms=sms, email=email)
    app.state.worker = DistributionWorker(factory, dispatcher, airtime, settings.ussd)
    app.state.session_manager = UssdSessionManager(
        AlertService(evaluator), settings.ussd,
    )
    logger.info("USSD session manager ready (provider base %s)", settings.africastalking.base_url)

    # --- Background cleanup ---
    cleanup_task: asyncio.Task | None = None
    if settings.session_cleanup_interval_seconds > 0:
        cleanup_task = asyncio.create_task(
            periodic_cleanup(factory, settings.session_cleanup_interval_seconds)
        )

    yield

    # --- Shutdown ---
    if cleanup_task is not None:
        cleanup_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await cleanup_task
    for gateway in (sms, email, airtime):
        await gateway.aclose()
    await dispose_engine()
    logger.info("Database engine disposed")


# ------------------------------------------------------------------
# Factory
# ------------------------------------------------------------------

def create_app(settings: ServerSettings | None = None) -> FastAPI:
    """Build and return the configured FastAPI application."""
    if settings is None:
        settings = load_settings()

    # --- Configure logging ---
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    app = FastAPI(
        title="StockAlert USSD Server",
        description="USSD drug-shortage reporting and supplier alert distribution",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Store settings so the lifespan handler can read them
    app.state.settings = settings

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Exception handlers ---
    app.add_exception_handler(ValueError, value_error_handler)
    app.add_exception_handler(Exception, generic_error_handler)

    # --- Health check (outside /api/v1 prefix) ---
    @app.get("/health")
    async def health() -> dict:
        """Readiness probe — verifies DB connectivity."""
        try:
            async with get_engine().connect() as conn:
                await conn.execute(text("SELECT 1"))
            return {"status": "ok"}
        except Exception as exc:
            logger.error("Health check failed: %s", exc)
            return {"status": "error", "detail": "database unavailable"}

    # --- Mount all API routes ---
    register_routes(app)

    return app


# ------------------------------------------------------------------
# Module-level ASGI export (for uvicorn stockalert_server.app:app)
# ------------------------------------------------------------------
app = create_app()


# ------------------------------------------------------------------
# CLI entry point
# ------------------------------------------------------------------

def cli() -> None:
    """Console-script entry point: ``stockalert-server``."""
    import uvicorn

    settings = load_settings()
    uvicorn.run(
        "stockalert_server.app:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=False,
    )

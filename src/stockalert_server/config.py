"""Server configuration — reads settings from environment variables.

All settings have sensible defaults for local development.  In production
the values are typically overridden via env vars or a ``.env`` file.

The USSD SDK never reads the environment: ``load_settings()`` builds its
config dataclasses here and the lifespan handler injects them.
"""

import os
from dataclasses import dataclass, field

from stockalert_ussd.config import AfricasTalkingConfig, EmailConfig, UssdSettings
from stockalert_ussd.constants import (
    DEFAULT_CURRENCY,
    DEFAULT_REWARD_AMOUNT,
    ESTIMATED_UNIT_PRICE,
    EXPIRY_GRACE_SECONDS,
    MAX_RESPONSE_LENGTH,
    SESSION_TIMEOUT_SECONDS,
)


@dataclass(frozen=True)
class ServerSettings:
    """Immutable server configuration read from environment at startup."""

    # Network
    host: str = "0.0.0.0"
    port: int = 8080

    # CORS: comma-separated origins, or "*" for wide-open dev mode
    cors_origins: list[str] = field(default_factory=lambda: ["*"])

    # Logging
    log_level: str = "INFO"

    # Admin API key: shared secret for admin endpoints (None = disabled)
    admin_api_key: str | None = None

    # Whole-pipeline budget for one gateway callback
    request_timeout_seconds: float = 8.0

    # Periodic stale-session sweep; 0 disables the background task
    session_cleanup_interval_seconds: int = 0

    ussd: UssdSettings = field(default_factory=UssdSettings)
    africastalking: AfricasTalkingConfig = field(default_factory=AfricasTalkingConfig)
    email: EmailConfig = field(default_factory=EmailConfig)


def load_settings() -> ServerSettings:
    """Build settings from ``SERVER_*``, ``USSD_*``, ``AT_*`` and ``EMAIL_*`` variables."""
    raw_origins = os.getenv("SERVER_CORS_ORIGINS", "*")
    origins = [o.strip() for o in raw_origins.split(",") if o.strip()]

    ussd = UssdSettings(
        session_timeout_seconds=int(
            os.getenv("USSD_SESSION_TIMEOUT_SECONDS", str(SESSION_TIMEOUT_SECONDS))
        ),
        expiry_grace_seconds=int(
            os.getenv("USSD_EXPIRY_GRACE_SECONDS", str(EXPIRY_GRACE_SECONDS))
        ),
        max_response_length=int(
            os.getenv("USSD_MAX_RESPONSE_LENGTH", str(MAX_RESPONSE_LENGTH))
        ),
        reward_amount=float(os.getenv("USSD_REWARD_AMOUNT", str(DEFAULT_REWARD_AMOUNT))),
        currency=os.getenv("USSD_CURRENCY", DEFAULT_CURRENCY),
        estimated_unit_price=float(
            os.getenv("ESTIMATED_UNIT_PRICE", str(ESTIMATED_UNIT_PRICE))
        ),
        business_timezone=os.getenv("BUSINESS_TIMEZONE", "Africa/Nairobi"),
    )

    africastalking = AfricasTalkingConfig(
        username=os.getenv("AT_USERNAME", "sandbox"),
        api_key=os.getenv("AT_API_KEY") or None,
        sender_id=os.getenv("AT_SENDER_ID") or None,
    )

    email = EmailConfig(
        api_url=os.getenv("EMAIL_API_URL") or None,
        api_key=os.getenv("EMAIL_API_KEY") or None,
        sender=os.getenv("EMAIL_SENDER", "alerts@stockalert.local"),
    )

    return ServerSettings(
        host=os.getenv("SERVER_HOST", "0.0.0.0"),
        port=int(os.getenv("SERVER_PORT", "8080")),
        cors_origins=origins,
        log_level=os.getenv("SERVER_LOG_LEVEL", "INFO").upper(),
        admin_api_key=os.getenv("ADMIN_API_KEY") or None,
        request_timeout_seconds=float(os.getenv("USSD_REQUEST_TIMEOUT_SECONDS", "8")),
        session_cleanup_interval_seconds=int(
            os.getenv("SESSION_CLEANUP_INTERVAL_SECONDS", "0")
        ),
        ussd=ussd,
        africastalking=africastalking,
        email=email,
    )

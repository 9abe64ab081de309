"""Runtime settings injected into the USSD core.

The SDK never reads environment variables itself; the server builds these
objects once at startup and hands them to the session manager, the
eligibility evaluator and the gateway clients.
"""

from dataclasses import dataclass
from datetime import timedelta

from stockalert_ussd.constants import (
    DEFAULT_CURRENCY,
    DEFAULT_REWARD_AMOUNT,
    ESTIMATED_UNIT_PRICE,
    EXPIRY_GRACE_SECONDS,
    MAX_INPUT_LENGTH,
    MAX_RESPONSE_LENGTH,
    SESSION_TIMEOUT_SECONDS,
)


@dataclass(frozen=True)
class UssdSettings:
    """Session timing, screen limits and reward parameters."""

    session_timeout_seconds: int = SESSION_TIMEOUT_SECONDS
    # Sessions this close to expiry are silently extended before processing
    expiry_grace_seconds: int = EXPIRY_GRACE_SECONDS
    max_response_length: int = MAX_RESPONSE_LENGTH
    max_input_length: int = MAX_INPUT_LENGTH

    reward_amount: float = DEFAULT_REWARD_AMOUNT
    currency: str = DEFAULT_CURRENCY

    # Eligibility: order value heuristic and the clock used for business hours
    estimated_unit_price: float = ESTIMATED_UNIT_PRICE
    business_timezone: str = "Africa/Nairobi"

    @property
    def session_timeout(self) -> timedelta:
        return timedelta(seconds=self.session_timeout_seconds)

    @property
    def expiry_grace(self) -> timedelta:
        return timedelta(seconds=self.expiry_grace_seconds)


@dataclass(frozen=True)
class AfricasTalkingConfig:
    """Credentials for the Africa's Talking SMS and airtime APIs.

    A ``username`` of ``sandbox`` routes every call to the sandbox host.
    """

    username: str = "sandbox"
    api_key: str | None = None
    sender_id: str | None = None
    timeout_seconds: float = 10.0

    @property
    def base_url(self) -> str:
        if self.username == "sandbox":
            return "https://api.sandbox.africastalking.com"
        return "https://api.africastalking.com"


@dataclass(frozen=True)
class EmailConfig:
    """Transactional e-mail HTTP API settings (None url = disabled)."""

    api_url: str | None = None
    api_key: str | None = None
    sender: str = "alerts@stockalert.local"
    timeout_seconds: float = 10.0

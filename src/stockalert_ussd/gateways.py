"""HTTP gateway clients for Africa's Talking and a transactional mail API.

Each client owns one ``httpx.AsyncClient`` built from an injected config
dataclass.  Pass ``transport=`` to swap the network layer (tests use
``httpx.MockTransport``).  Errors never propagate: they are logged and
returned as unsuccessful results.
"""

import logging

import httpx

from stockalert_ussd.config import AfricasTalkingConfig, EmailConfig
from stockalert_ussd.interfaces import NotificationGateway, RewardGateway
from stockalert_ussd.models.distribution import RewardResult, SendResult
from stockalert_ussd.phone import mask_phone_number

logger = logging.getLogger(__name__)

# Africa's Talking per-recipient status for an accepted SMS
_AT_SMS_SUCCESS = "Success"


def _http_error(exc: httpx.HTTPError) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        return f"HTTP {exc.response.status_code}"
    if isinstance(exc, httpx.TimeoutException):
        return "timeout"
    return exc.__class__.__name__


class AfricasTalkingSMSGateway(NotificationGateway):
    """Bulk SMS via ``POST /version1/messaging`` (form-encoded)."""

    channel = "sms"

    def __init__(
        self,
        config: AfricasTalkingConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._client = httpx.AsyncClient(
            base_url=config.base_url,
            timeout=config.timeout_seconds,
            transport=transport,
            headers={
                "apiKey": config.api_key or "",
                "Accept": "application/json",
            },
        )

    async def send(
        self, recipient: str, message: str, *, subject: str | None = None
    ) -> SendResult:
        if not self._config.api_key:
            return SendResult(success=False, error="SMS gateway not configured")

        form = {
            "username": self._config.username,
            "to": recipient,
            "message": message,
        }
        if self._config.sender_id:
            form["from"] = self._config.sender_id

        try:
            resp = await self._client.post("/version1/messaging", data=form)
            resp.raise_for_status()
            payload = resp.json()
        except httpx.HTTPError as exc:
            logger.warning(
                "SMS to %s failed: %s", mask_phone_number(recipient), _http_error(exc)
            )
            return SendResult(success=False, error=_http_error(exc))
        except ValueError:
            logger.warning("SMS gateway returned a non-JSON body")
            return SendResult(success=False, error="invalid gateway response")

        recipients = (payload.get("SMSMessageData") or {}).get("Recipients") or []
        if not recipients:
            message_text = (payload.get("SMSMessageData") or {}).get("Message")
            return SendResult(success=False, error=message_text or "no recipients accepted")

        first = recipients[0]
        if first.get("status") != _AT_SMS_SUCCESS:
            return SendResult(
                success=False,
                message_id=first.get("messageId"),
                error=first.get("status") or "rejected",
            )
        return SendResult(
            success=True,
            message_id=first.get("messageId"),
            cost=first.get("cost"),
        )

    async def aclose(self) -> None:
        await self._client.aclose()


class AfricasTalkingAirtimeGateway(RewardGateway):
    """Airtime top-ups via ``POST /version1/airtime/send``."""

    def __init__(
        self,
        config: AfricasTalkingConfig,
        *,
        currency: str = "KES",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._currency = currency
        self._client = httpx.AsyncClient(
            base_url=config.base_url,
            timeout=config.timeout_seconds,
            transport=transport,
            headers={
                "apiKey": config.api_key or "",
                "Accept": "application/json",
            },
        )

    async def reward(self, phone_number: str, amount: float) -> RewardResult:
        if not self._config.api_key:
            return RewardResult(success=False, error="Airtime gateway not configured")

        body = {
            "username": self._config.username,
            "recipients": [
                {
                    "phoneNumber": phone_number,
                    "currencyCode": self._currency,
                    "amount": amount,
                }
            ],
        }
        try:
            resp = await self._client.post("/version1/airtime/send", json=body)
            resp.raise_for_status()
            payload = resp.json()
        except httpx.HTTPError as exc:
            logger.warning(
                "Airtime to %s failed: %s",
                mask_phone_number(phone_number), _http_error(exc),
            )
            return RewardResult(success=False, error=_http_error(exc))
        except ValueError:
            return RewardResult(success=False, error="invalid gateway response")

        responses = payload.get("responses") or []
        if not responses:
            return RewardResult(
                success=False, error=payload.get("errorMessage") or "no response"
            )
        first = responses[0]
        if first.get("errorMessage") not in (None, "None", ""):
            return RewardResult(
                success=False,
                request_id=first.get("requestId"),
                error=first.get("errorMessage"),
            )
        return RewardResult(success=True, request_id=first.get("requestId"))

    async def aclose(self) -> None:
        await self._client.aclose()


class HttpEmailGateway(NotificationGateway):
    """Transactional e-mail through a JSON HTTP API with a bearer token.

    Posts ``{"from", "to", "subject", "text"}`` to ``EmailConfig.api_url``
    and reads an optional ``id`` from the response.
    """

    channel = "email"

    def __init__(
        self,
        config: EmailConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        headers = {"Accept": "application/json"}
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"
        self._client = httpx.AsyncClient(
            timeout=config.timeout_seconds,
            transport=transport,
            headers=headers,
        )

    async def send(
        self, recipient: str, message: str, *, subject: str | None = None
    ) -> SendResult:
        if not self._config.api_url:
            return SendResult(success=False, error="Email gateway not configured")

        body = {
            "from": self._config.sender,
            "to": recipient,
            "subject": subject or "StockAlert notification",
            "text": message,
        }
        try:
            resp = await self._client.post(self._config.api_url, json=body)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Email to %s failed: %s", recipient, _http_error(exc))
            return SendResult(success=False, error=_http_error(exc))

        message_id = None
        if resp.content:
            try:
                payload = resp.json()
            except ValueError:
                payload = None
            if isinstance(payload, dict):
                message_id = payload.get("id")
        return SendResult(success=True, message_id=message_id)

    async def aclose(self) -> None:
        await self._client.aclose()

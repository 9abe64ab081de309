"""Abstract interfaces for the outbound gateways.

The dispatcher only depends on these contracts.  Concrete HTTP clients
live in :mod:`stockalert_ussd.gateways`; tests plug in in-memory fakes.

Typical wiring::

    sms = AfricasTalkingSMSGateway(at_config)
    email = HttpEmailGateway(email_config)
    airtime = AfricasTalkingAirtimeGateway(at_config)

    dispatcher = DistributionDispatcher(sms=sms, email=email)
    worker = DistributionWorker(session_factory, dispatcher, airtime, settings)
"""

from abc import ABC, abstractmethod

from stockalert_ussd.models.distribution import RewardResult, SendResult


class NotificationGateway(ABC):
    """One outbound notification channel (SMS, e-mail)."""

    channel: str = ""

    @abstractmethod
    async def send(
        self, recipient: str, message: str, *, subject: str | None = None
    ) -> SendResult:
        """Deliver ``message`` to ``recipient``.

        Parameters
        ----------
        recipient:
            Phone number in ``+254`` form or an e-mail address, depending
            on the channel.
        message:
            Plain-text body.
        subject:
            Used by channels that have one (e-mail); ignored otherwise.

        Returns
        -------
        SendResult
            Implementations report transport and provider errors through
            ``success=False`` and ``error`` instead of raising.
        """
        ...

    async def aclose(self) -> None:
        """Release network resources.  Default: nothing to release."""


class RewardGateway(ABC):
    """Airtime top-up for callers who report shortages."""

    @abstractmethod
    async def reward(self, phone_number: str, amount: float) -> RewardResult:
        """Send ``amount`` of airtime to ``phone_number``."""
        ...

    async def aclose(self) -> None:
        """Release network resources.  Default: nothing to release."""

"""Alert distribution — supplier notification fan-out and delivery logging.

Two layers:

  - :class:`DistributionDispatcher` is I/O-free apart from the gateways: it
    composes the messages, picks channels per supplier and runs every
    (supplier, channel) attempt concurrently.  Each attempt yields exactly
    one :class:`DeliveryOutcome`, success or failure.
  - :class:`DistributionWorker` is the background job scheduled after a
    USSD request commits an alert.  It opens its own database session,
    dispatches, appends ``alert_distributions`` rows, rewards the reporter
    and commits.  It also serves the explicit retry path for failed rows.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Iterable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stockalert_db.models.delivery import AirtimeReward, AlertDistribution
from stockalert_db.models.enums import DeliveryStatus, NotificationChannel, RewardStatus
from stockalert_db.repository import (
    AlertRepository,
    DeliveryRepository,
    PreferenceRepository,
    UserRepository,
)

from stockalert_ussd.config import UssdSettings
from stockalert_ussd.constants import DEFAULT_NOTIFICATION_METHODS
from stockalert_ussd.interfaces import NotificationGateway, RewardGateway
from stockalert_ussd.models.distribution import (
    DeliveryOutcome,
    DispatchReport,
    DistributionJob,
)
from stockalert_ussd.phone import mask_phone_number, normalize_phone_number
from stockalert_ussd.text import (
    format_alert_email,
    format_multi_drug_alert_sms,
    format_stock_alert_sms,
)

logger = logging.getLogger(__name__)


def compose_messages(alert: Any) -> tuple[str, str, str]:
    """Return ``(sms_text, email_subject, email_body)`` for an alert."""
    drugs = alert.drugs or []
    urgency = str(getattr(alert.overall_urgency, "value", alert.overall_urgency))
    hospital = alert.facility_name or alert.hospital_name
    address = (alert.location or {}).get("address")

    if len(drugs) == 1:
        drug = drugs[0]
        sms = format_stock_alert_sms(
            hospital,
            drug.get("drug_name", "unknown drug"),
            drug.get("requested_quantity", 0),
            str(drug.get("urgency_level") or urgency),
            address=address,
            unit=drug.get("unit") or "units",
        )
    else:
        sms = format_multi_drug_alert_sms(hospital, len(drugs), urgency, address=address)

    subject, body = format_alert_email(hospital, drugs, urgency, address=address)
    return sms, subject, body


class DistributionDispatcher:
    """Sends one alert to a set of suppliers over their preferred channels.

    Args:
        sms: gateway for the ``sms`` channel (None = not configured)
        email: gateway for the ``email`` channel (None = not configured)
    """

    def __init__(
        self,
        sms: NotificationGateway | None = None,
        email: NotificationGateway | None = None,
    ) -> None:
        self._gateways: dict[str, NotificationGateway | None] = {
            NotificationChannel.SMS.value: sms,
            NotificationChannel.EMAIL.value: email,
        }

    def channels_for(self, preference: Any | None) -> list[str]:
        """Notification methods for a supplier, defaulting to SMS only."""
        methods = list(getattr(preference, "notification_methods", None) or [])
        if not methods:
            methods = list(DEFAULT_NOTIFICATION_METHODS)
        # Preserve order, drop duplicates
        return list(dict.fromkeys(str(m).strip().lower() for m in methods))

    async def dispatch(
        self,
        alert: Any,
        suppliers: Iterable[Any],
        preferences: Iterable[Any],
    ) -> DispatchReport:
        """Notify every supplier over each of its channels concurrently.

        ``in_app`` is acknowledged but not dispatched and produces no
        outcome.  Failures are isolated per supplier and per channel.
        """
        by_supplier = {p.supplier_id: p for p in preferences}
        sms_text, subject, body = compose_messages(alert)
        report = DispatchReport(alert_id=alert.id)

        attempts = []
        for supplier in suppliers:
            channels = self.channels_for(by_supplier.get(supplier.id))
            dispatched = False
            for channel in channels:
                if channel == NotificationChannel.IN_APP.value:
                    logger.info(
                        "In-app notification for supplier %s not dispatched yet",
                        supplier.id,
                    )
                    continue
                dispatched = True
                message = body if channel == NotificationChannel.EMAIL.value else sms_text
                attempts.append(self._attempt(supplier, channel, message, subject))
            if not dispatched:
                report.skipped.append(supplier.id)

        if attempts:
            report.outcomes = list(await asyncio.gather(*attempts))
        logger.info(
            "Alert %s dispatched: %d sent, %d failed, %d skipped",
            alert.id, report.sent, report.failed, len(report.skipped),
        )
        return report

    async def send_one(self, alert: Any, supplier: Any, channel: str) -> DeliveryOutcome:
        """Single attempt over ``channel``; used by the retry path."""
        sms_text, subject, body = compose_messages(alert)
        message = body if channel == NotificationChannel.EMAIL.value else sms_text
        return await self._attempt(supplier, channel, message, subject)

    async def _attempt(
        self, supplier: Any, channel: str, message: str, subject: str
    ) -> DeliveryOutcome:
        outcome = DeliveryOutcome(
            supplier_id=supplier.id,
            supplier_name=supplier.facility_name or supplier.name or "Unknown",
            channel=channel,
            success=False,
        )

        if channel not in self._gateways:
            outcome.failure_reason = f"Unsupported channel '{channel}'"
            return outcome

        recipient = self._recipient(supplier, channel)
        outcome.recipient = recipient
        if not recipient:
            outcome.failure_reason = (
                "No phone number on file"
                if channel == NotificationChannel.SMS.value
                else "No email address on file"
            )
            return outcome

        gateway = self._gateways[channel]
        if gateway is None:
            outcome.failure_reason = f"{channel} gateway not configured"
            return outcome

        try:
            result = await gateway.send(recipient, message, subject=subject)
        except Exception as exc:
            logger.exception("Unexpected %s gateway failure for supplier %s", channel, supplier.id)
            outcome.failure_reason = f"Gateway error: {exc.__class__.__name__}"
            return outcome

        outcome.success = result.success
        outcome.message_id = result.message_id
        outcome.cost = result.cost
        if not result.success:
            outcome.failure_reason = result.error or "Delivery failed"
        return outcome

    @staticmethod
    def _recipient(supplier: Any, channel: str) -> str | None:
        if channel == NotificationChannel.SMS.value:
            phone = getattr(supplier, "phone_number", None)
            return normalize_phone_number(phone) if phone else None
        return getattr(supplier, "email", None) or None


def outcome_to_record(
    alert_id: uuid.UUID, outcome: DeliveryOutcome, now: datetime
) -> AlertDistribution:
    return AlertDistribution(
        alert_id=alert_id,
        supplier_id=outcome.supplier_id,
        supplier_name=outcome.supplier_name,
        channel=outcome.channel,
        recipient=outcome.recipient,
        status=DeliveryStatus.SENT if outcome.success else DeliveryStatus.FAILED,
        message_id=outcome.message_id,
        cost=outcome.cost,
        failure_reason=outcome.failure_reason,
        sent_at=now if outcome.success else None,
        created_at=now,
        retry_count=0,
    )


class DistributionWorker:
    """Background job: notify suppliers and reward the reporter.

    Args:
        session_factory: creates the job's own ``AsyncSession``
        dispatcher: the notification fan-out
        reward_gateway: airtime top-ups (None = rewards disabled)
        settings: reward amount and currency
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dispatcher: DistributionDispatcher,
        reward_gateway: RewardGateway | None = None,
        settings: UssdSettings | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._dispatcher = dispatcher
        self._reward_gateway = reward_gateway
        self._settings = settings or UssdSettings()
        self._alerts = AlertRepository()
        self._users = UserRepository()
        self._preferences = PreferenceRepository()
        self._deliveries = DeliveryRepository()

    # ==================================================================
    # Background distribution
    # ==================================================================

    async def run(self, job: DistributionJob) -> DispatchReport | None:
        """Process one job to completion.

        Never raises: failures are logged and ``None`` is returned, since
        the caller already received its USSD response.
        """
        async with self._session_factory() as db:
            try:
                report = await self._run(db, job)
                await db.commit()
                return report
            except Exception:
                logger.exception("Distribution job for alert %s failed", job.alert_id)
                await db.rollback()
                return None

    async def _run(self, db: AsyncSession, job: DistributionJob) -> DispatchReport | None:
        alert = await self._alerts.get_by_id(db, job.alert_id)
        if alert is None:
            logger.warning("Alert %s vanished before distribution", job.alert_id)
            return None

        rows = await self._users.get_many(db, job.supplier_ids)
        by_id = {s.id: s for s in rows}
        suppliers = [by_id[i] for i in job.supplier_ids if i in by_id]
        preferences = await self._preferences.list_for_suppliers(db, job.supplier_ids)

        report = await self._dispatcher.dispatch(alert, suppliers, preferences)
        now = datetime.now(timezone.utc)
        records = [outcome_to_record(alert.id, o, now) for o in report.outcomes]
        if records:
            await self._deliveries.add_records(db, records)

        if job.reporter_phone:
            report.reward_sent = await self._reward(db, job)
        return report

    async def _reward(self, db: AsyncSession, job: DistributionJob) -> bool:
        amount = self._settings.reward_amount
        if self._reward_gateway is None:
            logger.info("Airtime rewards disabled; alert %s not rewarded", job.alert_id)
            return False

        try:
            result = await self._reward_gateway.reward(job.reporter_phone, amount)
            success, request_id, error = result.success, result.request_id, result.error
        except Exception as exc:
            logger.exception("Airtime gateway failure for alert %s", job.alert_id)
            success, request_id, error = False, None, f"Gateway error: {exc.__class__.__name__}"

        await self._deliveries.add_reward(
            db,
            AirtimeReward(
                user_id=job.hospital_id,
                alert_id=job.alert_id,
                phone_number=job.reporter_phone,
                amount=amount,
                currency=self._settings.currency,
                status=RewardStatus.SENT if success else RewardStatus.FAILED,
                request_id=request_id,
                failure_reason=error,
            ),
        )
        logger.info(
            "Airtime reward of %s %s to %s: %s",
            amount, self._settings.currency,
            mask_phone_number(job.reporter_phone), "sent" if success else "failed",
        )
        return success

    # ==================================================================
    # Explicit retry
    # ==================================================================

    async def retry_delivery(
        self, db: AsyncSession, record_id: uuid.UUID
    ) -> AlertDistribution:
        """Re-send a failed delivery over the same channel.

        The caller must ``await db.commit()`` to persist.

        Raises:
            ValueError: if the record, its alert or its supplier is not
                found, or the record is not in failed state.
        """
        record = await self._deliveries.get_by_id(db, record_id)
        if record is None:
            raise ValueError(f"Delivery record {record_id} not found")
        if record.status != DeliveryStatus.FAILED:
            raise ValueError(f"Delivery record {record_id} is not in failed state")

        alert = await self._alerts.get_by_id(db, record.alert_id)
        if alert is None:
            raise ValueError(f"Alert {record.alert_id} not found")
        supplier = await self._users.get_by_id(db, record.supplier_id)
        if supplier is None:
            raise ValueError(f"Supplier {record.supplier_id} not found")

        outcome = await self._dispatcher.send_one(alert, supplier, record.channel)
        logger.info(
            "Retry of delivery %s over %s: %s",
            record_id, record.channel, "sent" if outcome.success else "failed",
        )
        return await self._deliveries.record_retry(
            db,
            record,
            status=DeliveryStatus.SENT if outcome.success else DeliveryStatus.FAILED,
            message_id=outcome.message_id,
            cost=outcome.cost,
            failure_reason=outcome.failure_reason,
        )

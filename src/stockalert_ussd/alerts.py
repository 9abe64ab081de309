"""AlertService — turns a completed reporting session into a stock alert.

The alert row and the eligible supplier set are computed inside the USSD
request so that the caller's success message reflects a committed alert.
Notification itself is deferred to :class:`DistributionWorker` through the
returned :class:`DistributionJob`.
"""

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from stockalert_db.repository import (
    AlertRepository,
    PreferenceRepository,
    UserRepository,
)

from stockalert_ussd.eligibility import SupplierEligibilityEvaluator
from stockalert_ussd.models.distribution import DistributionJob
from stockalert_ussd.models.session import CallerProfile, DrugOption

logger = logging.getLogger(__name__)


class AlertService:
    """Creates USSD alerts and selects the suppliers to notify."""

    def __init__(self, evaluator: SupplierEligibilityEvaluator) -> None:
        self._evaluator = evaluator
        self._alerts = AlertRepository()
        self._users = UserRepository()
        self._preferences = PreferenceRepository()

    async def submit_ussd_alert(
        self,
        db: AsyncSession,
        *,
        caller: CallerProfile,
        session_id: str,
        reporter_phone: str,
        drug: DrugOption,
        quantity: int,
        urgency: str,
        now: datetime | None = None,
    ) -> DistributionJob:
        """Insert the alert and return the distribution job for it.

        The caller must ``await db.commit()`` to persist.  Database errors
        propagate so the lifecycle manager can show the failure text.
        """
        requirement = {
            "drug_id": drug.id,
            "drug_name": drug.name,
            "category": drug.category,
            "requested_quantity": quantity,
            "urgency_level": urgency,
            "unit": drug.unit,
        }
        location = {"address": caller.location} if caller.location else None

        alert = await self._alerts.create_alert(
            db,
            hospital_id=caller.id,
            hospital_name=caller.name or caller.display_name,
            facility_name=caller.display_name,
            drugs=[requirement],
            overall_urgency=urgency,
            location=location,
            session_id=session_id,
            reporter_phone=reporter_phone,
        )

        suppliers = await self._users.list_suppliers(db)
        preferences = await self._preferences.list_for_suppliers(
            db, [s.id for s in suppliers]
        )
        eligible = self._evaluator.eligible_suppliers(alert, suppliers, preferences, now)

        logger.info(
            "Alert %s created for %s (%s, %d %s, %s); %d/%d suppliers eligible",
            alert.id, caller.display_name, drug.name, quantity, drug.unit,
            urgency, len(eligible), len(suppliers),
        )
        return DistributionJob(
            alert_id=alert.id,
            supplier_ids=[s.id for s in eligible],
            hospital_id=alert.hospital_id,
            reporter_phone=reporter_phone,
        )

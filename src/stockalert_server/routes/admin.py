"""Admin endpoints — session cleanup and delivery inspection / retry.

Every request must include an ``X-Admin-Key`` header matching the
configured ``ADMIN_API_KEY``.  Returns 401 if missing, 403 if wrong or
admin endpoints are disabled.
"""

import uuid
from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from stockalert_db.models.delivery import AlertDistribution
from stockalert_db.repository import AlertRepository, DeliveryRepository
from stockalert_ussd.dispatcher import DistributionWorker
from stockalert_ussd.lifecycle import UssdSessionManager

from stockalert_server.dependencies import (
    get_db,
    get_session_manager,
    get_worker,
    require_admin_key,
)

router = APIRouter(prefix="/admin", tags=["admin"])


# ------------------------------------------------------------------
# Response models
# ------------------------------------------------------------------

class CleanupResult(BaseModel):
    """Response body for cleanup operations."""
    affected_rows: int
    action: str


class DeliveryRecordView(BaseModel):
    """One ``alert_distributions`` row."""
    id: uuid.UUID
    alert_id: uuid.UUID
    supplier_id: uuid.UUID
    supplier_name: str
    channel: str
    recipient: str | None
    status: str
    message_id: str | None
    cost: str | None
    failure_reason: str | None
    sent_at: datetime | None
    created_at: datetime
    retry_count: int
    last_retry_at: datetime | None

    @classmethod
    def from_row(cls, row: AlertDistribution) -> "DeliveryRecordView":
        return cls(
            id=row.id,
            alert_id=row.alert_id,
            supplier_id=row.supplier_id,
            supplier_name=row.supplier_name,
            channel=row.channel,
            recipient=row.recipient,
            status=str(getattr(row.status, "value", row.status)),
            message_id=row.message_id,
            cost=row.cost,
            failure_reason=row.failure_reason,
            sent_at=row.sent_at,
            created_at=row.created_at,
            retry_count=row.retry_count or 0,
            last_retry_at=row.last_retry_at,
        )


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------

_alerts = AlertRepository()
_deliveries = DeliveryRepository()


@router.post("/cleanup/sessions")
async def cleanup_sessions(
    db: AsyncSession = Depends(get_db),
    manager: UssdSessionManager = Depends(get_session_manager),
    _admin: str = Depends(require_admin_key),
) -> CleanupResult:
    """Mark active sessions past their expiry as expired."""
    affected = await manager.expire_stale_sessions(db)
    return CleanupResult(affected_rows=affected, action="expire_stale")


@router.get("/alerts/{alert_id}/deliveries")
async def list_deliveries(
    alert_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    _admin: str = Depends(require_admin_key),
) -> list[DeliveryRecordView]:
    """Delivery records for an alert, oldest first.  404 if the alert is unknown."""
    if await _alerts.get_by_id(db, alert_id) is None:
        raise ValueError(f"Alert not found: alert_id={alert_id}")
    rows = await _deliveries.list_by_alert(db, alert_id)
    return [DeliveryRecordView.from_row(r) for r in rows]


@router.post("/deliveries/{record_id}/retry")
async def retry_delivery(
    record_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    worker: DistributionWorker = Depends(get_worker),
    _admin: str = Depends(require_admin_key),
) -> DeliveryRecordView:
    """Re-send a failed delivery.  404 if unknown, 409 if it did not fail."""
    row = await worker.retry_delivery(db, record_id)
    return DeliveryRecordView.from_row(row)

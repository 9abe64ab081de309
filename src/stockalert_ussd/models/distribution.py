"""Gateway results and distribution bookkeeping models."""

import uuid

from pydantic import BaseModel, Field


class SendResult(BaseModel):
    """Outcome of one notification gateway call."""

    success: bool
    message_id: str | None = None
    cost: str | None = None
    error: str | None = None


class RewardResult(BaseModel):
    """Outcome of one airtime reward gateway call."""

    success: bool
    request_id: str | None = None
    error: str | None = None


class DeliveryOutcome(BaseModel):
    """One (supplier, channel) attempt, ready to become a delivery record."""

    supplier_id: uuid.UUID
    supplier_name: str
    channel: str
    recipient: str | None = None
    success: bool
    message_id: str | None = None
    cost: str | None = None
    failure_reason: str | None = None


class DispatchReport(BaseModel):
    """Summary of one alert's fan-out."""

    alert_id: uuid.UUID
    outcomes: list[DeliveryOutcome] = Field(default_factory=list)
    # Suppliers whose only channels are not dispatched yet (in_app)
    skipped: list[uuid.UUID] = Field(default_factory=list)
    reward_sent: bool | None = None

    @property
    def sent(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.success)


class DistributionJob(BaseModel):
    """Work item handed from the USSD request to the background worker."""

    alert_id: uuid.UUID
    supplier_ids: list[uuid.UUID]
    hospital_id: uuid.UUID
    reporter_phone: str | None = None

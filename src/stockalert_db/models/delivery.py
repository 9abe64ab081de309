"""Delivery audit ORM models — alert notifications and airtime rewards.

Both tables are append-only logs.  ``AlertDistribution`` rows are only
touched again by the explicit retry path, which bumps ``retry_count``.
"""

import uuid
from datetime import datetime

from sqlalchemy import Float, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from stockalert_db.models.base import Base, utcnow
from stockalert_db.models.enums import DeliveryStatus, RewardStatus


class AlertDistribution(Base):
    """One notification attempt for (alert, supplier, channel)."""

    __tablename__ = "alert_distributions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    alert_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("stock_alerts.id"), nullable=False,
    )
    supplier_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("user_accounts.id"), nullable=False,
    )
    supplier_name: Mapped[str] = mapped_column(Text, nullable=False)

    channel: Mapped[str] = mapped_column(String(20), nullable=False)
    # Phone number or e-mail address the message was sent to (None if missing)
    recipient: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[DeliveryStatus] = mapped_column(String(20), nullable=False)
    message_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    cost: Mapped[str | None] = mapped_column(Text, nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    sent_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow,
    )
    retry_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0"),
    )
    last_retry_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True,
    )

    __table_args__ = (
        Index("ix_alert_distributions_alert", "alert_id"),
        Index(
            "ix_alert_distributions_failed",
            "created_at",
            postgresql_where=text("status = 'failed'"),
        ),
    )


class AirtimeReward(Base):
    """One airtime reward attempt for the reporter of an alert."""

    __tablename__ = "airtime_rewards"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("user_accounts.id"), nullable=False,
    )
    alert_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("stock_alerts.id"), nullable=False, index=True,
    )
    phone_number: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[RewardStatus] = mapped_column(String(20), nullable=False)
    request_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow,
    )

"""StockAlert ORM model — the artifact a completed reporting session produces.

Drug requirements and location live in JSONB so a single row carries the
whole alert, the same shape the dashboards read.  Each requirement dict has
``drug_id``, ``drug_name``, ``category``, ``requested_quantity``,
``urgency_level`` and ``unit``.
"""

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from stockalert_db.models.base import Base, utcnow
from stockalert_db.models.enums import AlertStatus, UrgencyLevel


class StockAlert(Base):
    """One shortage alert raised by a hospital."""

    __tablename__ = "stock_alerts"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    # --- Facility identity ---
    hospital_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("user_accounts.id"),
        nullable=False,
        index=True,
    )
    hospital_name: Mapped[str] = mapped_column(Text, nullable=False)
    facility_name: Mapped[str] = mapped_column(Text, nullable=False)

    # --- Requirements ---
    drugs: Mapped[list] = mapped_column(JSONB, nullable=False)
    # Highest urgency across ``drugs``
    overall_urgency: Mapped[UrgencyLevel] = mapped_column(String(20), nullable=False)
    # {"address": ..., "latitude": ..., "longitude": ...}, every key optional
    location: Mapped[dict | None] = mapped_column(JSONB, nullable=True)

    # --- Lifecycle ---
    status: Mapped[AlertStatus] = mapped_column(
        String(20), nullable=False, default=AlertStatus.PENDING, index=True,
    )
    source: Mapped[str] = mapped_column(String(20), nullable=False, default="ussd")
    # USSD session that raised the alert; unique so one session yields one alert
    session_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    reporter_phone: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow,
    )
    resolved_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True,
    )

    __table_args__ = (
        Index(
            "ux_stock_alerts_session_id",
            "session_id",
            unique=True,
            postgresql_where=text("session_id IS NOT NULL"),
        ),
        Index("ix_stock_alerts_hospital_created", "hospital_id", "created_at"),
    )

    @property
    def categories(self) -> list[str]:
        """Distinct drug categories referenced by this alert."""
        seen: list[str] = []
        for drug in self.drugs or []:
            category = drug.get("category")
            if category and category not in seen:
                seen.append(category)
        return seen

    @property
    def address(self) -> str | None:
        return (self.location or {}).get("address")

    def __repr__(self) -> str:
        return (
            f"<StockAlert(id={self.id!s}, hospital={self.hospital_name!r}, "
            f"urgency={self.overall_urgency!r}, status={self.status!r})>"
        )

"""SupplierPreference ORM model — per-supplier alert filters.

Empty arrays and NULL thresholds mean "no restriction".  A supplier without
an active row receives every alert.
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Float, ForeignKey, String, Text, text
from sqlalchemy.dialects.postgresql import ARRAY, TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from stockalert_db.models.base import Base, utcnow


class SupplierPreference(Base):
    """Filter configuration for one supplier."""

    __tablename__ = "supplier_preferences"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    supplier_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("user_accounts.id"),
        nullable=False,
        unique=True,
    )

    # --- Filters ---
    drug_categories: Mapped[list[str]] = mapped_column(
        ARRAY(Text), nullable=False, default=list, server_default=text("'{}'"),
    )
    urgency_levels: Mapped[list[str]] = mapped_column(
        ARRAY(Text), nullable=False, default=list, server_default=text("'{}'"),
    )
    geographic_regions: Mapped[list[str]] = mapped_column(
        ARRAY(Text), nullable=False, default=list, server_default=text("'{}'"),
    )
    max_distance_km: Mapped[float | None] = mapped_column(Float, nullable=True)
    minimum_order_value: Mapped[float | None] = mapped_column(Float, nullable=True)

    # --- Business hours ---
    # "HH:MM" in the business timezone
    business_hours_start: Mapped[str | None] = mapped_column(String(5), nullable=True)
    business_hours_end: Mapped[str | None] = mapped_column(String(5), nullable=True)
    # Lower-case weekday names, e.g. ["monday", "tuesday"]
    working_days: Mapped[list[str]] = mapped_column(
        ARRAY(Text), nullable=False, default=list, server_default=text("'{}'"),
    )

    # --- Delivery ---
    notification_methods: Mapped[list[str]] = mapped_column(
        ARRAY(Text), nullable=False, default=lambda: ["sms"],
        server_default=text("'{sms}'"),
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=text("true"),
    )

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow, onupdate=utcnow,
    )

"""UssdSession ORM model — one row per gateway session identifier.

The telecom gateway is stateless: every request carries only the session
token and the cumulative input.  This row is where the menu position and
the accumulated selections live between requests.  Rows are never deleted;
finished sessions are kept for audit with a terminal status.
"""

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, Index, SmallInteger, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from stockalert_db.models.base import Base, utcnow
from stockalert_db.models.enums import SessionStatus


class UssdSession(Base):
    """One row per USSD conversation."""

    __tablename__ = "ussd_sessions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    # --- Identity ---
    # Opaque token assigned by the gateway, unique per conversation
    session_id: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    # Normalised to +254XXXXXXXXX before the row is created
    phone_number: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    service_code: Mapped[str] = mapped_column(Text, nullable=False)
    provider: Mapped[str] = mapped_column(String(20), nullable=False)
    network_code: Mapped[str | None] = mapped_column(String(10), nullable=True)

    # --- Menu position ---
    current_level: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=1)
    # Serialised session-data union (see stockalert_ussd.models.session)
    session_data: Mapped[dict] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
        server_default=text("'{}'::jsonb"),
    )

    # --- Lifecycle ---
    status: Mapped[SessionStatus] = mapped_column(
        String(20),
        nullable=False,
        default=SessionStatus.ACTIVE,
        index=True,
    )
    end_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # --- Timestamps ---
    started_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow,
    )
    last_activity_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow,
    )
    expires_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False,
    )
    ended_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True,
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'completed', 'expired', 'cancelled')",
            name="ck_ussd_session_status",
        ),
        CheckConstraint(
            "expires_at >= last_activity_at",
            name="ck_ussd_session_expiry_after_activity",
        ),
        # Cleanup job scans active rows by expiry
        Index(
            "ix_ussd_sessions_active_expiry",
            "expires_at",
            postgresql_where=text("status = 'active'"),
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<UssdSession(session_id={self.session_id!r}, "
            f"status={self.status!r}, level={self.current_level})>"
        )

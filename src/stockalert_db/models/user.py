"""UserAccount ORM model — hospitals (callers) and suppliers.

Account management screens live outside this service; the USSD flow only
looks hospitals up by phone number and creates one when an unregistered
caller completes the registration menu.
"""

import uuid
from datetime import datetime

from sqlalchemy import String, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from stockalert_db.models.base import Base, utcnow
from stockalert_db.models.enums import UserRole


class UserAccount(Base):
    """A registered hospital or supplier."""

    __tablename__ = "user_accounts"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    role: Mapped[UserRole] = mapped_column(String(20), nullable=False, index=True)
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    facility_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    email: Mapped[str | None] = mapped_column(Text, nullable=True)
    phone_number: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    # Free text.  Suppliers may include "lat,lng" to enable distance filtering.
    location: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow,
    )

    @property
    def display_name(self) -> str:
        return self.facility_name or self.name or "Unknown"

    def __repr__(self) -> str:
        return f"<UserAccount(id={self.id!s}, role={self.role!r}, name={self.name!r})>"

"""Drug catalogue ORM model — the categories and drugs offered in the menu."""

import uuid

from sqlalchemy import String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from stockalert_db.models.base import Base


class Drug(Base):
    """One reportable drug."""

    __tablename__ = "drugs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    # e.g. tablets, bottles, vials
    unit: Mapped[str] = mapped_column(String(40), nullable=False, default="units")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("category", "name", name="uq_drug_category_name"),
    )

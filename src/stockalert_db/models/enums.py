"""Database-level enumerations for StockAlert records."""

import enum


class SessionStatus(str, enum.Enum):
    """Lifecycle states for a USSD session.

    Transitions are monotonic:
        active -> completed  (menu reached a terminal response)
        active -> cancelled  (caller chose Exit, or an internal failure)
        active -> expired    (request arrived after expires_at, or cleanup)

    A terminal session never returns to ``active``.
    """

    ACTIVE = "active"
    COMPLETED = "completed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not SessionStatus.ACTIVE


class UserRole(str, enum.Enum):
    """Who is behind a user account."""

    HOSPITAL = "hospital"
    SUPPLIER = "supplier"


class UrgencyLevel(str, enum.Enum):
    """Drug shortage urgency, in menu display order (least to most urgent)."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AlertStatus(str, enum.Enum):
    """Stock alert states.  Only ``pending`` is written by this service."""

    PENDING = "pending"
    ACKNOWLEDGED = "acknowledged"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"


class NotificationChannel(str, enum.Enum):
    """Supplier notification methods.  ``in_app`` is not dispatched yet."""

    SMS = "sms"
    EMAIL = "email"
    IN_APP = "in_app"


class DeliveryStatus(str, enum.Enum):
    """Outcome of one notification attempt."""

    SENT = "sent"
    FAILED = "failed"


class RewardStatus(str, enum.Enum):
    """Outcome of one airtime reward attempt."""

    SENT = "sent"
    FAILED = "failed"

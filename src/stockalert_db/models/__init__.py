"""ORM models for stockalert_db."""

from stockalert_db.models.alert import StockAlert
from stockalert_db.models.base import Base
from stockalert_db.models.delivery import AirtimeReward, AlertDistribution
from stockalert_db.models.drug import Drug
from stockalert_db.models.enums import (
    AlertStatus,
    DeliveryStatus,
    NotificationChannel,
    RewardStatus,
    SessionStatus,
    UrgencyLevel,
    UserRole,
)
from stockalert_db.models.preference import SupplierPreference
from stockalert_db.models.session import UssdSession
from stockalert_db.models.user import UserAccount

__all__ = [
    "Base",
    # Tables
    "AirtimeReward",
    "AlertDistribution",
    "Drug",
    "StockAlert",
    "SupplierPreference",
    "UserAccount",
    "UssdSession",
    # Enums
    "AlertStatus",
    "DeliveryStatus",
    "NotificationChannel",
    "RewardStatus",
    "SessionStatus",
    "UrgencyLevel",
    "UserRole",
]

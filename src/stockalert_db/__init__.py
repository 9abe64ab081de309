"""stockalert_db — PostgreSQL persistence layer for StockAlert.

This package provides the ORM models, async engine factory, and
repositories used by the USSD core and the FastAPI server.
"""

from stockalert_db.engine import get_engine, get_session_factory
from stockalert_db.models.enums import SessionStatus
from stockalert_db.models.session import UssdSession
from stockalert_db.repository import (
    AlertRepository,
    DeliveryRepository,
    DrugRepository,
    PreferenceRepository,
    SessionRepository,
    UserRepository,
)

__all__ = [
    "UssdSession",
    "SessionStatus",
    "get_engine",
    "get_session_factory",
    "AlertRepository",
    "DeliveryRepository",
    "DrugRepository",
    "PreferenceRepository",
    "SessionRepository",
    "UserRepository",
]

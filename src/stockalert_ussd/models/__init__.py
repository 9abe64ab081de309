"""Pydantic models for the USSD menu, sessions and alert distribution."""

from stockalert_ussd.models.distribution import (
    DeliveryOutcome,
    DispatchReport,
    DistributionJob,
    RewardResult,
    SendResult,
)
from stockalert_ussd.models.session import (
    TRANSITIONS,
    AlertSummary,
    CallerProfile,
    DrugOption,
    IdleData,
    MenuContext,
    MenuEffect,
    MenuLevel,
    MenuResult,
    RegisterCallerEffect,
    RegistrationData,
    ReportingData,
    SessionData,
    SessionInfo,
    SubmitAlertEffect,
    UssdReply,
    dump_session_data,
    parse_session_data,
)

__all__ = [
    # Menu
    "MenuLevel",
    "TRANSITIONS",
    "MenuContext",
    "MenuResult",
    "MenuEffect",
    "SubmitAlertEffect",
    "RegisterCallerEffect",
    "CallerProfile",
    "DrugOption",
    "AlertSummary",
    # Session data
    "SessionData",
    "IdleData",
    "ReportingData",
    "RegistrationData",
    "parse_session_data",
    "dump_session_data",
    # Lifecycle
    "UssdReply",
    "SessionInfo",
    # Distribution
    "SendResult",
    "RewardResult",
    "DeliveryOutcome",
    "DispatchReport",
    "DistributionJob",
]

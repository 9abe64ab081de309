"""stockalert_ussd — USSD drug-shortage reporting and alert distribution SDK.

Public API:
    UssdSessionManager      — entry point: one gateway request in, one screen out
    MenuStateMachine        — pure menu transitions (levels 1-6, 10-12)
    AlertService            — creates alerts and selects eligible suppliers
    SupplierEligibilityEvaluator — preference filters for suppliers
    DistributionDispatcher  — concurrent per-supplier, per-channel notification
    DistributionWorker      — background job: dispatch, log deliveries, reward

Gateways:
    NotificationGateway     — ABC for SMS / e-mail channels
    RewardGateway           — ABC for airtime rewards
    AfricasTalkingSMSGateway, AfricasTalkingAirtimeGateway, HttpEmailGateway

Configuration:
    UssdSettings, AfricasTalkingConfig, EmailConfig
"""

from stockalert_ussd.alerts import AlertService
from stockalert_ussd.config import AfricasTalkingConfig, EmailConfig, UssdSettings
from stockalert_ussd.dispatcher import DistributionDispatcher, DistributionWorker
from stockalert_ussd.eligibility import SupplierEligibilityEvaluator
from stockalert_ussd.gateways import (
    AfricasTalkingAirtimeGateway,
    AfricasTalkingSMSGateway,
    HttpEmailGateway,
)
from stockalert_ussd.interfaces import NotificationGateway, RewardGateway
from stockalert_ussd.lifecycle import UssdSessionManager
from stockalert_ussd.menu import MenuStateMachine
from stockalert_ussd.models import (
    DispatchReport,
    DistributionJob,
    MenuContext,
    MenuLevel,
    MenuResult,
    SessionInfo,
    UssdReply,
)

__all__ = [
    # Core
    "UssdSessionManager",
    "MenuStateMachine",
    "AlertService",
    "SupplierEligibilityEvaluator",
    "DistributionDispatcher",
    "DistributionWorker",
    # Gateways
    "NotificationGateway",
    "RewardGateway",
    "AfricasTalkingSMSGateway",
    "AfricasTalkingAirtimeGateway",
    "HttpEmailGateway",
    # Config
    "UssdSettings",
    "AfricasTalkingConfig",
    "EmailConfig",
    # Models
    "MenuContext",
    "MenuLevel",
    "MenuResult",
    "UssdReply",
    "SessionInfo",
    "DistributionJob",
    "DispatchReport",
]

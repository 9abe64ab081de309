"""Menu and session models — the contract between the menu, the lifecycle
manager and API callers.

These models are intentionally decoupled from the ORM models in
``stockalert_db`` so that the menu state machine stays a pure function of
plain values.  The lifecycle manager converts ORM rows into
:class:`CallerProfile`, :class:`DrugOption` and :class:`AlertSummary`
before calling the menu.

Session data is a tagged union keyed by ``flow``:
  - IdleData: no sub-flow in progress (welcome and main menu)
  - ReportingData: browse -> category -> drug -> quantity -> urgency
  - RegistrationData: name -> facility -> location

It is stored as JSONB on the session row and re-parsed on every request.
"""

import uuid
from datetime import datetime
from enum import IntEnum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from stockalert_ussd.constants import DEFAULT_DRUG_UNIT
from stockalert_ussd.models.distribution import DistributionJob


class MenuLevel(IntEnum):
    """Named positions in the menu graph.

    Values are stable integers persisted in ``ussd_sessions.current_level``;
    new branches get new numbers instead of renumbering existing ones.
    """

    WELCOME = 1
    MAIN_MENU = 2
    CATEGORY = 3
    DRUG = 4
    QUANTITY = 5
    URGENCY = 6
    REGISTER_NAME = 10
    REGISTER_FACILITY = 11
    REGISTER_LOCATION = 12


# Levels reachable from each level.  Every level may re-prompt itself; a
# terminal response keeps the current level, so it is covered too.
TRANSITIONS: dict[MenuLevel, frozenset[MenuLevel]] = {
    MenuLevel.WELCOME: frozenset({MenuLevel.WELCOME, MenuLevel.MAIN_MENU}),
    MenuLevel.MAIN_MENU: frozenset(
        {MenuLevel.MAIN_MENU, MenuLevel.CATEGORY, MenuLevel.REGISTER_NAME}
    ),
    MenuLevel.CATEGORY: frozenset(
        {MenuLevel.CATEGORY, MenuLevel.MAIN_MENU, MenuLevel.DRUG}
    ),
    MenuLevel.DRUG: frozenset(
        {MenuLevel.DRUG, MenuLevel.CATEGORY, MenuLevel.QUANTITY}
    ),
    MenuLevel.QUANTITY: frozenset({MenuLevel.QUANTITY, MenuLevel.URGENCY}),
    MenuLevel.URGENCY: frozenset({MenuLevel.URGENCY, MenuLevel.QUANTITY}),
    MenuLevel.REGISTER_NAME: frozenset(
        {MenuLevel.REGISTER_NAME, MenuLevel.MAIN_MENU, MenuLevel.REGISTER_FACILITY}
    ),
    MenuLevel.REGISTER_FACILITY: frozenset(
        {
            MenuLevel.REGISTER_FACILITY,
            MenuLevel.REGISTER_NAME,
            MenuLevel.REGISTER_LOCATION,
        }
    ),
    MenuLevel.REGISTER_LOCATION: frozenset(
        {MenuLevel.REGISTER_LOCATION, MenuLevel.REGISTER_FACILITY}
    ),
}


# ---------------------------------------------------------------------------
# Values the lifecycle manager hands to the menu
# ---------------------------------------------------------------------------


class DrugOption(BaseModel):
    """One catalogue entry as shown in the drug list."""

    id: str
    name: str
    category: str
    unit: str = DEFAULT_DRUG_UNIT


class CallerProfile(BaseModel):
    """The registered hospital behind a phone number."""

    id: uuid.UUID
    phone_number: str
    name: str | None = None
    facility_name: str | None = None
    location: str | None = None

    @property
    def display_name(self) -> str:
        return self.facility_name or self.name or "StockAlert user"


class AlertSummary(BaseModel):
    """Condensed view of a past alert for the "Check My Alerts" screen."""

    drug_name: str
    quantity: int
    unit: str = DEFAULT_DRUG_UNIT
    urgency: str
    status: str
    created_at: datetime | None = None


class MenuContext(BaseModel):
    """Everything the menu may read besides the level, input and data.

    ``recent_alerts`` is only populated when the caller asked to see them.
    """

    caller: CallerProfile | None = None
    catalogue: list[DrugOption] = Field(default_factory=list)
    recent_alerts: list[AlertSummary] = Field(default_factory=list)
    provider: str = "safaricom"

    @property
    def is_registered(self) -> bool:
        return self.caller is not None


# ---------------------------------------------------------------------------
# Session data union
# ---------------------------------------------------------------------------


class IdleData(BaseModel):
    flow: Literal["idle"] = "idle"


class ReportingData(BaseModel):
    """Selections accumulated by the low-stock reporting sub-flow."""

    flow: Literal["reporting"] = "reporting"
    action: Literal["report"] = "report"
    # Category list shown at level 3; reused when going back from level 4
    categories: list[str] = Field(default_factory=list)
    category: str | None = None
    category_drugs: list[DrugOption] = Field(default_factory=list)
    drug: DrugOption | None = None
    quantity: int | None = None


class RegistrationData(BaseModel):
    """Partial registration fields collected at levels 10-12."""

    flow: Literal["registration"] = "registration"
    action: Literal["register"] = "register"
    name: str | None = None
    facility_name: str | None = None


SessionData = Annotated[
    Union[IdleData, ReportingData, RegistrationData],
    Field(discriminator="flow"),
]

_session_data_adapter = TypeAdapter(SessionData)


def parse_session_data(raw: dict[str, Any] | None) -> SessionData:
    """Re-hydrate stored session data.  Empty storage means idle."""
    if not raw:
        return IdleData()
    return _session_data_adapter.validate_python(raw)


def dump_session_data(data: SessionData) -> dict[str, Any]:
    return data.model_dump(mode="json")


# ---------------------------------------------------------------------------
# Menu output
# ---------------------------------------------------------------------------


class SubmitAlertEffect(BaseModel):
    """Request to create a shortage alert when the caller picks an urgency.

    The lifecycle manager runs the effect and shows ``success_text`` or
    ``failure_text`` depending on the outcome.
    """

    kind: Literal["submit_alert"] = "submit_alert"
    drug: DrugOption
    quantity: int
    urgency: str
    success_text: str
    failure_text: str


class RegisterCallerEffect(BaseModel):
    """Request to create the caller's hospital account."""

    kind: Literal["register_caller"] = "register_caller"
    name: str
    facility_name: str
    location: str
    success_text: str
    failure_text: str


MenuEffect = Annotated[
    Union[SubmitAlertEffect, RegisterCallerEffect],
    Field(discriminator="kind"),
]


class MenuResult(BaseModel):
    """Output of one menu transition.

    ``end_status`` / ``end_reason`` name the terminal session status to
    record when ``end_session`` is set ("completed" or "cancelled").
    """

    text: str
    next_level: MenuLevel
    end_session: bool = False
    session_data: SessionData = Field(default_factory=IdleData)
    effect: MenuEffect | None = None
    end_status: Literal["completed", "cancelled"] | None = None
    end_reason: str | None = None


# ---------------------------------------------------------------------------
# Lifecycle output
# ---------------------------------------------------------------------------


class UssdReply(BaseModel):
    """What the lifecycle manager returns to the HTTP layer.

    ``text`` is already truncated but carries no ``CON``/``END`` prefix.
    ``error`` is a short diagnostic code only surfaced in the JSON variant.
    ``job`` is set when an alert was created and suppliers must be
    notified after the response is sent.
    """

    text: str
    end_session: bool
    next_level: int | None = None
    provider: str | None = None
    user_input: str = ""
    error: str | None = None
    job: DistributionJob | None = None


class SessionInfo(BaseModel):
    """Public view of a USSD session for diagnostics.

    Maps from the ORM ``UssdSession`` model but exposes only what
    operators need.  The phone number is masked.
    """

    session_id: str
    phone_number: str
    service_code: str
    provider: str
    status: str
    current_level: int
    session_data: dict[str, Any]
    end_reason: str | None = None
    started_at: datetime
    last_activity_at: datetime
    expires_at: datetime
    ended_at: datetime | None = None

"""MenuStateMachine — pure menu logic for the StockAlert USSD service.

Each call maps ``(level, input, context, session data)`` to the screen to
show next.  No I/O happens here: creating an alert or registering a caller
is returned as an effect on the :class:`MenuResult`, and the lifecycle
manager performs it and picks the success or failure text.

Menu graph::

    1 Welcome ──> 2 Main menu ──1──> 3 Category ──> 4 Drug ──> 5 Quantity ──> 6 Urgency ──> submit
                    │   (unregistered)
                    └──1──> 10 Name ──> 11 Facility ──> 12 Location ──> register

"0" steps back one screen everywhere except the main menu (exit) and the
quantity prompt, where 0 is a valid stock count.
"""

from __future__ import annotations

import logging

from stockalert_ussd.constants import (
    MIN_REGISTRATION_FIELD_LENGTH,
    URGENCY_LEVELS,
)
from stockalert_ussd.models.session import (
    TRANSITIONS,
    DrugOption,
    IdleData,
    MenuContext,
    MenuLevel,
    MenuResult,
    RegisterCallerEffect,
    RegistrationData,
    ReportingData,
    SessionData,
    SubmitAlertEffect,
)
from stockalert_ussd.phone import max_menu_items

logger = logging.getLogger(__name__)

BACK = "0"

# ---------------------------------------------------------------------------
# Screen copy
# ---------------------------------------------------------------------------

MAIN_OPTIONS_REGISTERED = "1. Report Low Stock\n2. Check My Alerts\n3. Help\n0. Exit"
MAIN_OPTIONS_UNREGISTERED = "1. Register\n2. Check My Alerts\n3. Help\n0. Exit"

INVALID_OPTION = "Invalid option. Please try again."
INVALID_NUMBER = "Please enter a valid number."
HELP_TEXT = (
    "StockAlert Help:\n"
    "Report low drug stock and nearby suppliers are alerted by SMS. "
    "Each alert earns you airtime.\n"
    "Dial again and choose 1 to start."
)
GOODBYE_TEXT = "Thank you for using StockAlert. Stay healthy!"
REGISTER_FIRST_TEXT = "Please register first to check your alerts. Dial again and choose 1."
NO_ALERTS_TEXT = "You have no alerts yet."
NO_DRUGS_TEXT = "No drugs are available right now. Please try again later."
RESTART_TEXT = "Session error. Please dial again to restart."

ALERT_FAILED_TEXT = "Failed to submit alert. Please try again later."
REGISTRATION_FAILED_TEXT = "Registration failed. Please try again later."


def _numbered(items: list[str]) -> str:
    return "\n".join(f"{i}. {item}" for i, item in enumerate(items, start=1))


def _parse_count(raw: str) -> int | None:
    """Parse a non-negative keypad number.  Returns None for anything else."""
    # isdigit() alone accepts superscripts and other non-ASCII digits
    if not (raw.isascii() and raw.isdigit()):
        return None
    return int(raw)


def _parse_choice(raw: str, count: int) -> int | None:
    """Return the 0-based index for a 1-based selection, or None."""
    choice = _parse_count(raw)
    if choice is None:
        return None
    if 1 <= choice <= count:
        return choice - 1
    return None


class MenuStateMachine:
    """Computes the next USSD screen.

    The machine holds no per-session state; everything it needs arrives as
    arguments, so identical inputs always yield identical results.
    """

    def transition(
        self,
        level: int,
        raw_input: str,
        context: MenuContext,
        data: SessionData,
    ) -> MenuResult:
        """Advance the menu by one request.

        Args:
            level: the session's current level (may be unknown)
            raw_input: the latest input segment, already extracted and trimmed
            context: caller, catalogue and provider information
            data: the parsed session data union
        """
        try:
            current = MenuLevel(level)
        except ValueError:
            logger.warning("Unknown menu level %s, ending session", level)
            return self._restart(level)

        user_input = (raw_input or "").strip()

        if current is MenuLevel.WELCOME:
            result = self._welcome(context)
        elif current is MenuLevel.MAIN_MENU:
            result = self._main_menu(user_input, context)
        elif current in (
            MenuLevel.CATEGORY,
            MenuLevel.DRUG,
            MenuLevel.QUANTITY,
            MenuLevel.URGENCY,
        ):
            if not isinstance(data, ReportingData):
                return self._restart(current)
            result = self._reporting_step(current, user_input, context, data)
        else:
            if not isinstance(data, RegistrationData):
                return self._restart(current)
            result = self._registration_step(current, user_input, data)

        if result.next_level not in TRANSITIONS[current]:
            # Programming error in the menu itself
            raise RuntimeError(
                f"Illegal menu transition {current.name} -> {result.next_level.name}"
            )
        return result

    # ==================================================================
    # Welcome and main menu (levels 1-2)
    # ==================================================================

    def _main_options(self, context: MenuContext) -> str:
        if context.is_registered:
            return MAIN_OPTIONS_REGISTERED
        return MAIN_OPTIONS_UNREGISTERED

    def _welcome(self, context: MenuContext) -> MenuResult:
        if context.is_registered:
            header = f"Welcome {context.caller.display_name}"
        else:
            header = "Welcome to StockAlert"
        return MenuResult(
            text=f"{header}\n{self._main_options(context)}",
            next_level=MenuLevel.MAIN_MENU,
            session_data=IdleData(),
        )

    def _back_to_main(self, context: MenuContext) -> MenuResult:
        return MenuResult(
            text=f"Welcome back to StockAlert\n{self._main_options(context)}",
            next_level=MenuLevel.MAIN_MENU,
            session_data=IdleData(),
        )

    def _main_menu(self, user_input: str, context: MenuContext) -> MenuResult:
        if user_input == "1":
            if context.is_registered:
                return self._start_reporting(context)
            return MenuResult(
                text="Register with StockAlert\nEnter your name:\n0. Back",
                next_level=MenuLevel.REGISTER_NAME,
                session_data=RegistrationData(),
            )

        if user_input == "2":
            if not context.is_registered:
                return self._end(MenuLevel.MAIN_MENU, REGISTER_FIRST_TEXT)
            return self._end(MenuLevel.MAIN_MENU, self._recent_alerts_text(context))

        if user_input == "3":
            return self._end(MenuLevel.MAIN_MENU, HELP_TEXT)

        if user_input == BACK:
            return self._end(
                MenuLevel.MAIN_MENU, GOODBYE_TEXT, status="cancelled", reason="exit",
            )

        return MenuResult(
            text=f"{INVALID_OPTION}\n{self._main_options(context)}",
            next_level=MenuLevel.MAIN_MENU,
            session_data=IdleData(),
        )

    def _recent_alerts_text(self, context: MenuContext) -> str:
        if not context.recent_alerts:
            return NO_ALERTS_TEXT
        lines = ["Your recent alerts:"]
        for i, alert in enumerate(context.recent_alerts, start=1):
            lines.append(
                f"{i}. {alert.drug_name} {alert.quantity} {alert.unit} "
                f"({alert.urgency.upper()}) - {alert.status}"
            )
        return "\n".join(lines)

    # ==================================================================
    # Reporting flow (levels 3-6)
    # ==================================================================

    def _start_reporting(self, context: MenuContext) -> MenuResult:
        categories = sorted({d.category for d in context.catalogue})
        categories = categories[: max_menu_items(context.provider)]
        if not categories:
            return self._end(MenuLevel.MAIN_MENU, NO_DRUGS_TEXT)
        data = ReportingData(categories=categories)
        return MenuResult(
            text=self._category_screen(categories),
            next_level=MenuLevel.CATEGORY,
            session_data=data,
        )

    def _category_screen(self, categories: list[str], prefix: str | None = None) -> str:
        body = f"Select drug category:\n{_numbered(categories)}\n0. Back"
        return f"{prefix}\n{body}" if prefix else body

    def _drug_screen(
        self, category: str, drugs: list[DrugOption], prefix: str | None = None
    ) -> str:
        body = (
            f"Select drug from {category}:\n"
            f"{_numbered([d.name for d in drugs])}\n0. Back"
        )
        return f"{prefix}\n{body}" if prefix else body

    def _quantity_screen(self, drug: DrugOption, prefix: str | None = None) -> str:
        body = f"Enter quantity of {drug.name} needed ({drug.unit}):"
        return f"{prefix}\n{body}" if prefix else body

    def _urgency_screen(self, drug: DrugOption, quantity: int, prefix: str | None = None) -> str:
        options = _numbered([u.capitalize() for u in URGENCY_LEVELS])
        body = (
            f"Quantity: {quantity} {drug.unit}\n"
            f"Select urgency level:\n{options}\n0. Back"
        )
        return f"{prefix}\n{body}" if prefix else body

    def _reporting_step(
        self,
        level: MenuLevel,
        user_input: str,
        context: MenuContext,
        data: ReportingData,
    ) -> MenuResult:
        if level is MenuLevel.CATEGORY:
            return self._select_category(user_input, context, data)
        if level is MenuLevel.DRUG:
            return self._select_drug(user_input, data)
        if level is MenuLevel.QUANTITY:
            return self._enter_quantity(user_input, data)
        return self._select_urgency(user_input, data)

    def _select_category(
        self, user_input: str, context: MenuContext, data: ReportingData
    ) -> MenuResult:
        if user_input == BACK:
            return self._back_to_main(context)

        index = _parse_choice(user_input, len(data.categories))
        if index is None:
            return MenuResult(
                text=self._category_screen(data.categories, INVALID_OPTION),
                next_level=MenuLevel.CATEGORY,
                session_data=data,
            )

        category = data.categories[index]
        drugs = [d for d in context.catalogue if d.category == category]
        drugs = drugs[: max_menu_items(context.provider)]
        if not drugs:
            return MenuResult(
                text=self._category_screen(
                    data.categories, f"No drugs listed under {category}."
                ),
                next_level=MenuLevel.CATEGORY,
                session_data=data,
            )

        updated = data.model_copy(
            update={"category": category, "category_drugs": drugs}
        )
        return MenuResult(
            text=self._drug_screen(category, drugs),
            next_level=MenuLevel.DRUG,
            session_data=updated,
        )

    def _select_drug(self, user_input: str, data: ReportingData) -> MenuResult:
        if user_input == BACK:
            # Category list comes from session data, not a fresh catalogue read
            updated = data.model_copy(update={"category": None, "category_drugs": []})
            return MenuResult(
                text=self._category_screen(data.categories),
                next_level=MenuLevel.CATEGORY,
                session_data=updated,
            )

        index = _parse_choice(user_input, len(data.category_drugs))
        if index is None:
            return MenuResult(
                text=self._drug_screen(
                    data.category or "", data.category_drugs, INVALID_OPTION
                ),
                next_level=MenuLevel.DRUG,
                session_data=data,
            )

        drug = data.category_drugs[index]
        return MenuResult(
            text=self._quantity_screen(drug),
            next_level=MenuLevel.QUANTITY,
            session_data=data.model_copy(update={"drug": drug}),
        )

    def _enter_quantity(self, user_input: str, data: ReportingData) -> MenuResult:
        if data.drug is None:
            return self._restart(MenuLevel.QUANTITY)

        # 0 is a legitimate count (stocked out), so there is no back option here
        quantity = _parse_count(user_input)
        if quantity is None:
            return MenuResult(
                text=self._quantity_screen(data.drug, INVALID_NUMBER),
                next_level=MenuLevel.QUANTITY,
                session_data=data,
            )

        return MenuResult(
            text=self._urgency_screen(data.drug, quantity),
            next_level=MenuLevel.URGENCY,
            session_data=data.model_copy(update={"quantity": quantity}),
        )

    def _select_urgency(self, user_input: str, data: ReportingData) -> MenuResult:
        if data.drug is None or data.quantity is None:
            return self._restart(MenuLevel.URGENCY)

        if user_input == BACK:
            return MenuResult(
                text=self._quantity_screen(data.drug),
                next_level=MenuLevel.QUANTITY,
                session_data=data.model_copy(update={"quantity": None}),
            )

        index = _parse_choice(user_input, len(URGENCY_LEVELS))
        if index is None:
            return MenuResult(
                text=self._urgency_screen(data.drug, data.quantity, INVALID_OPTION),
                next_level=MenuLevel.URGENCY,
                session_data=data,
            )

        urgency = URGENCY_LEVELS[index]
        success_text = (
            "Alert submitted successfully!\n"
            f"{data.drug.name}: {data.quantity} {data.drug.unit}\n"
            f"Urgency: {urgency.upper()}\n"
            "Suppliers will be notified. You will receive airtime shortly."
        )
        effect = SubmitAlertEffect(
            drug=data.drug,
            quantity=data.quantity,
            urgency=urgency,
            success_text=success_text,
            failure_text=ALERT_FAILED_TEXT,
        )
        return MenuResult(
            text=success_text,
            next_level=MenuLevel.URGENCY,
            end_session=True,
            session_data=data,
            effect=effect,
            end_status="completed",
            end_reason="alert_submitted",
        )

    # ==================================================================
    # Registration flow (levels 10-12)
    # ==================================================================

    def _registration_step(
        self, level: MenuLevel, user_input: str, data: RegistrationData
    ) -> MenuResult:
        if level is MenuLevel.REGISTER_NAME:
            if user_input == BACK:
                # Registration only starts from the main menu of an unregistered caller
                return self._back_to_main(MenuContext())
            if len(user_input) < MIN_REGISTRATION_FIELD_LENGTH:
                return MenuResult(
                    text="Name must be at least 2 characters.\nEnter your name:\n0. Back",
                    next_level=MenuLevel.REGISTER_NAME,
                    session_data=data,
                )
            return MenuResult(
                text="Enter your hospital/facility name:\n0. Back",
                next_level=MenuLevel.REGISTER_FACILITY,
                session_data=data.model_copy(update={"name": user_input}),
            )

        if level is MenuLevel.REGISTER_FACILITY:
            if user_input == BACK:
                return MenuResult(
                    text="Enter your name:\n0. Back",
                    next_level=MenuLevel.REGISTER_NAME,
                    session_data=data.model_copy(update={"name": None}),
                )
            if len(user_input) < MIN_REGISTRATION_FIELD_LENGTH:
                return MenuResult(
                    text=(
                        "Facility name must be at least 2 characters.\n"
                        "Enter your hospital/facility name:\n0. Back"
                    ),
                    next_level=MenuLevel.REGISTER_FACILITY,
                    session_data=data,
                )
            return MenuResult(
                text="Enter your location (town or county):\n0. Back",
                next_level=MenuLevel.REGISTER_LOCATION,
                session_data=data.model_copy(update={"facility_name": user_input}),
            )

        # REGISTER_LOCATION
        if user_input == BACK:
            return MenuResult(
                text="Enter your hospital/facility name:\n0. Back",
                next_level=MenuLevel.REGISTER_FACILITY,
                session_data=data.model_copy(update={"facility_name": None}),
            )
        if len(user_input) < MIN_REGISTRATION_FIELD_LENGTH:
            return MenuResult(
                text=(
                    "Location must be at least 2 characters.\n"
                    "Enter your location (town or county):\n0. Back"
                ),
                next_level=MenuLevel.REGISTER_LOCATION,
                session_data=data,
            )
        if not data.name or not data.facility_name:
            return self._restart(MenuLevel.REGISTER_LOCATION)

        success_text = (
            "Registration successful!\n"
            f"Welcome {data.name} of {data.facility_name}.\n"
            "Dial again to report low stock."
        )
        effect = RegisterCallerEffect(
            name=data.name,
            facility_name=data.facility_name,
            location=user_input,
            success_text=success_text,
            failure_text=REGISTRATION_FAILED_TEXT,
        )
        return MenuResult(
            text=success_text,
            next_level=MenuLevel.REGISTER_LOCATION,
            end_session=True,
            session_data=data,
            effect=effect,
            end_status="completed",
            end_reason="registered",
        )

    # ==================================================================
    # Terminal helpers
    # ==================================================================

    def _end(
        self,
        level: MenuLevel,
        text: str,
        *,
        status: str = "completed",
        reason: str = "completed",
    ) -> MenuResult:
        return MenuResult(
            text=text,
            next_level=level,
            end_session=True,
            session_data=IdleData(),
            end_status=status,
            end_reason=reason,
        )

    def _restart(self, level: int) -> MenuResult:
        """Terminal reply for unknown levels or corrupt data."""
        try:
            current = MenuLevel(level)
        except ValueError:
            current = MenuLevel.WELCOME
        return MenuResult(
            text=RESTART_TEXT,
            next_level=current,
            end_session=True,
            session_data=IdleData(),
            end_status="cancelled",
            end_reason="invalid_state",
        )

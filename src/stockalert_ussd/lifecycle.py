"""UssdSessionManager — the entry point for every gateway callback.

Stateless manager pattern: each call loads the session row, runs one menu
transition, persists the result and returns the screen.  Nothing is kept
in memory between calls; the gateway's cumulative ``text`` is only used
for its last segment.

The manager accepts an ``AsyncSession`` from the caller so that the caller
(typically a FastAPI endpoint) controls transaction boundaries.

Request pipeline:
    validate -> detect provider -> load or create session -> terminal guard
    -> expiry check -> grace extension -> build context -> transition
    -> run effect (savepoint) -> persist -> terminal status
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from stockalert_db.models.enums import SessionStatus
from stockalert_db.models.session import UssdSession
from stockalert_db.models.user import UserAccount
from stockalert_db.repository import (
    AlertRepository,
    DrugRepository,
    SessionRepository,
    UserRepository,
)

from stockalert_ussd.alerts import AlertService
from stockalert_ussd.config import UssdSettings
from stockalert_ussd.constants import (
    CONTINUE_PREFIX,
    DEFAULT_DRUG_CATALOGUE,
    DEFAULT_DRUG_UNIT,
    RECENT_ALERTS_LIMIT,
    SESSION_ID_PATTERN,
)
from stockalert_ussd.menu import MenuStateMachine
from stockalert_ussd.models.distribution import DistributionJob
from stockalert_ussd.models.session import (
    AlertSummary,
    CallerProfile,
    DrugOption,
    IdleData,
    MenuContext,
    MenuEffect,
    MenuLevel,
    RegisterCallerEffect,
    SessionData,
    SessionInfo,
    SubmitAlertEffect,
    UssdReply,
    dump_session_data,
    parse_session_data,
)
from stockalert_ussd.phone import (
    detect_provider,
    is_valid_phone_number,
    mask_phone_number,
    normalize_phone_number,
)
from stockalert_ussd.text import extract_user_input, truncate_response

logger = logging.getLogger(__name__)

MISSING_FIELDS_TEXT = "Invalid request. Missing required parameters."
INVALID_SESSION_TEXT = "Invalid session. Please dial again."
INVALID_PHONE_TEXT = "Invalid phone number. Please dial from a registered mobile line."
SESSION_ENDED_TEXT = "This session has ended. Please dial again."
SESSION_EXPIRED_TEXT = "Session expired. Please dial again to start over."
UNAVAILABLE_TEXT = "Service temporarily unavailable. Please try again later."


class UssdSessionManager:
    """Drives USSD sessions through the menu state machine.

    Args:
        alert_service: creates alerts when a reporting session completes
        settings: timing and screen limits
    """

    def __init__(
        self,
        alert_service: AlertService,
        settings: UssdSettings | None = None,
    ) -> None:
        self._alert_service = alert_service
        self._settings = settings or UssdSettings()
        self._menu = MenuStateMachine()
        self._repo = SessionRepository()
        self._users = UserRepository()
        self._drugs = DrugRepository()
        self._alerts = AlertRepository()

    @property
    def settings(self) -> UssdSettings:
        return self._settings

    # ==================================================================
    # Request handling
    # ==================================================================

    async def handle(
        self,
        db: AsyncSession,
        *,
        session_id: str | None,
        service_code: str | None,
        phone_number: str | None,
        text: str | None,
        network_code: str | None = None,
        now: datetime | None = None,
    ) -> UssdReply:
        """Process one gateway request and return the screen to show.

        Never raises for caller-facing problems: validation, state and
        dependent-service errors all become terminal replies.  The caller
        must ``await db.commit()`` to persist.
        """
        user_input = extract_user_input(text, self._settings.max_input_length)
        provider = detect_provider(network_code)

        # --- Validation ---
        if not session_id or not service_code or not phone_number:
            return self._reply(
                MISSING_FIELDS_TEXT, end=True, user_input=user_input,
                provider=provider, error="missing_fields",
            )
        if not SESSION_ID_PATTERN.match(session_id):
            return self._reply(
                INVALID_SESSION_TEXT, end=True, user_input=user_input,
                provider=provider, error="invalid_session_id",
            )
        phone = normalize_phone_number(phone_number)
        if not is_valid_phone_number(phone):
            return self._reply(
                INVALID_PHONE_TEXT, end=True, user_input=user_input,
                provider=provider, error="invalid_phone_number",
            )

        now = now or datetime.now(timezone.utc)
        timeout = self._settings.session_timeout

        # --- Load or create ---
        row = await self._repo.get_by_session_id(db, session_id)
        if row is None:
            row = await self._repo.create_session(
                db,
                session_id=session_id,
                phone_number=phone,
                service_code=service_code,
                provider=provider,
                network_code=network_code,
                timeout=timeout,
                now=now,
            )
            logger.info(
                "New USSD session %s from %s via %s",
                session_id, mask_phone_number(phone), provider,
            )

        # --- State guards ---
        if SessionStatus(row.status).is_terminal:
            return self._reply(
                SESSION_ENDED_TEXT, end=True, user_input=user_input,
                provider=row.provider, level=row.current_level, error="session_ended",
            )
        if now >= row.expires_at:
            await self._repo.mark_terminal(
                db, row, SessionStatus.EXPIRED, reason="timeout", now=now,
            )
            logger.info("USSD session %s expired", session_id)
            return self._reply(
                SESSION_EXPIRED_TEXT, end=True, user_input=user_input,
                provider=row.provider, level=row.current_level, error="session_expired",
            )
        if row.expires_at - now <= self._settings.expiry_grace:
            await self._repo.touch(db, row, timeout=timeout, now=now)
            logger.debug("Extended USSD session %s to %s", session_id, row.expires_at)

        # --- Transition ---
        try:
            return await self._advance(db, row, phone, user_input, now)
        except Exception:
            logger.exception("USSD session %s failed at level %s", session_id, row.current_level)
            await self._cancel_after_failure(db, row, now)
            return self._reply(
                UNAVAILABLE_TEXT, end=True, user_input=user_input,
                provider=row.provider, level=row.current_level, error="internal_error",
            )

    async def _advance(
        self,
        db: AsyncSession,
        row: UssdSession,
        phone: str,
        user_input: str,
        now: datetime,
    ) -> UssdReply:
        data = self._load_data(row)
        context = await self._build_context(db, row, phone, user_input)
        result = self._menu.transition(row.current_level, user_input, context, data)

        text = result.text
        end_status = result.end_status
        end_reason = result.end_reason
        job: DistributionJob | None = None

        if result.effect is not None:
            ok, job = await self._apply_effect(db, row, context, result.effect)
            if ok:
                text = result.effect.success_text
            else:
                text = result.effect.failure_text
                end_status = "cancelled"
                end_reason = f"{result.effect.kind}_failed"

        await self._repo.save_progress(
            db,
            row,
            level=int(result.next_level),
            session_data=dump_session_data(result.session_data),
            timeout=self._settings.session_timeout,
            now=now,
        )
        if result.end_session:
            await self._repo.mark_terminal(
                db,
                row,
                SessionStatus(end_status or SessionStatus.COMPLETED),
                reason=end_reason or "completed",
                now=now,
            )

        return self._reply(
            text,
            end=result.end_session,
            user_input=user_input,
            provider=row.provider,
            level=int(result.next_level),
            job=job,
        )

    # ==================================================================
    # Effects
    # ==================================================================

    async def _apply_effect(
        self,
        db: AsyncSession,
        row: UssdSession,
        context: MenuContext,
        effect: MenuEffect,
    ) -> tuple[bool, DistributionJob | None]:
        """Run a menu effect inside a savepoint.

        A failure rolls back only the effect's writes; the session row can
        still be updated afterwards.
        """
        try:
            if isinstance(effect, SubmitAlertEffect):
                if context.caller is None:
                    logger.warning(
                        "Alert submission from unregistered caller in session %s",
                        row.session_id,
                    )
                    return False, None
                async with db.begin_nested():
                    job = await self._alert_service.submit_ussd_alert(
                        db,
                        caller=context.caller,
                        session_id=row.session_id,
                        reporter_phone=row.phone_number,
                        drug=effect.drug,
                        quantity=effect.quantity,
                        urgency=effect.urgency,
                    )
                return True, job

            if isinstance(effect, RegisterCallerEffect):
                async with db.begin_nested():
                    user = await self._users.create_hospital(
                        db,
                        phone_number=row.phone_number,
                        name=effect.name,
                        facility_name=effect.facility_name,
                        location=effect.location,
                    )
                logger.info(
                    "Registered hospital %s (%s) from session %s",
                    user.id, effect.facility_name, row.session_id,
                )
                return True, None
        except Exception:
            logger.exception("Effect %s failed in session %s", effect.kind, row.session_id)
            return False, None

        raise TypeError(f"Unhandled menu effect {effect!r}")

    # ==================================================================
    # Context
    # ==================================================================

    def _load_data(self, row: UssdSession) -> SessionData:
        try:
            return parse_session_data(row.session_data)
        except ValidationError:
            # The menu treats idle data at a flow level as a broken session
            logger.warning("Unreadable session data in %s, resetting", row.session_id)
            return IdleData()

    async def _build_context(
        self,
        db: AsyncSession,
        row: UssdSession,
        phone: str,
        user_input: str,
    ) -> MenuContext:
        """Load only what the current transition can read."""
        account = await self._users.get_hospital_by_phone(db, phone)
        caller = self._to_caller(account) if account is not None else None

        level = row.current_level
        catalogue: list[DrugOption] = []
        if level == MenuLevel.CATEGORY or (
            level == MenuLevel.MAIN_MENU and user_input == "1"
        ):
            catalogue = await self._load_catalogue(db)

        recent: list[AlertSummary] = []
        if caller is not None and level == MenuLevel.MAIN_MENU and user_input == "2":
            alerts = await self._alerts.list_recent_by_hospital(
                db, caller.id, limit=RECENT_ALERTS_LIMIT,
            )
            recent = [self._to_summary(a) for a in alerts]

        return MenuContext(
            caller=caller,
            catalogue=catalogue,
            recent_alerts=recent,
            provider=row.provider,
        )

    async def _load_catalogue(self, db: AsyncSession) -> list[DrugOption]:
        drugs = await self._drugs.list_drugs(db)
        if drugs:
            return [
                DrugOption(
                    id=str(d.id),
                    name=d.name,
                    category=d.category,
                    unit=d.unit or DEFAULT_DRUG_UNIT,
                )
                for d in drugs
            ]
        return [
            DrugOption(id=f"default-{i}", name=name, category=category, unit=unit)
            for i, (category, name, unit) in enumerate(DEFAULT_DRUG_CATALOGUE, start=1)
        ]

    @staticmethod
    def _to_caller(account: UserAccount) -> CallerProfile:
        return CallerProfile(
            id=account.id,
            phone_number=account.phone_number,
            name=account.name,
            facility_name=account.facility_name,
            location=account.location,
        )

    @staticmethod
    def _to_summary(alert) -> AlertSummary:
        first = (alert.drugs or [{}])[0]
        return AlertSummary(
            drug_name=first.get("drug_name", "Unknown"),
            quantity=int(first.get("requested_quantity") or 0),
            unit=first.get("unit") or DEFAULT_DRUG_UNIT,
            urgency=str(getattr(alert.overall_urgency, "value", alert.overall_urgency)),
            status=str(getattr(alert.status, "value", alert.status)),
            created_at=alert.created_at,
        )

    # ==================================================================
    # Failure handling and replies
    # ==================================================================

    async def _cancel_after_failure(
        self, db: AsyncSession, row: UssdSession, now: datetime
    ) -> None:
        try:
            await self._repo.mark_terminal(
                db, row, SessionStatus.CANCELLED, reason="internal_error", now=now,
            )
        except Exception:
            logger.exception("Could not mark session %s as cancelled", row.session_id)

    def _reply(
        self,
        text: str,
        *,
        end: bool,
        user_input: str,
        provider: str | None,
        level: int | None = None,
        error: str | None = None,
        job: DistributionJob | None = None,
    ) -> UssdReply:
        # Leave room for the "CON "/"END " prefix within the gateway limit
        budget = self._settings.max_response_length - len(CONTINUE_PREFIX) - 1
        return UssdReply(
            text=truncate_response(text, budget),
            end_session=end,
            next_level=level,
            provider=provider,
            user_input=user_input,
            error=error,
            job=job,
        )

    # ==================================================================
    # Diagnostics and maintenance
    # ==================================================================

    async def get_session_info(
        self, db: AsyncSession, session_id: str
    ) -> SessionInfo | None:
        """Fetch a diagnostic view of a session.  Returns None if not found."""
        row = await self._repo.get_by_session_id(db, session_id)
        if row is None:
            return None
        return SessionInfo(
            session_id=row.session_id,
            phone_number=mask_phone_number(row.phone_number),
            service_code=row.service_code,
            provider=row.provider,
            status=str(getattr(row.status, "value", row.status)),
            current_level=row.current_level,
            session_data=row.session_data or {},
            end_reason=row.end_reason,
            started_at=row.started_at,
            last_activity_at=row.last_activity_at,
            expires_at=row.expires_at,
            ended_at=row.ended_at,
        )

    async def expire_stale_sessions(
        self, db: AsyncSession, *, now: datetime | None = None
    ) -> int:
        """Mark active sessions past their expiry as expired.  Caller commits."""
        count = await self._repo.expire_stale_sessions(db, now=now)
        if count:
            logger.info("Expired %d stale USSD session(s)", count)
        return count

"""Async repositories for the StockAlert tables.

All public methods accept an ``AsyncSession`` so the caller controls
transaction boundaries.  Methods call ``flush()`` but never ``commit()``.

The repositories avoid business rules (menu logic, eligibility) but do
enforce the structural session invariants: ``expires_at`` never moves
backwards and a terminal status is never left.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from stockalert_db.models.alert import StockAlert
from stockalert_db.models.delivery import AirtimeReward, AlertDistribution
from stockalert_db.models.drug import Drug
from stockalert_db.models.enums import AlertStatus, SessionStatus, UserRole
from stockalert_db.models.preference import SupplierPreference
from stockalert_db.models.session import UssdSession
from stockalert_db.models.user import UserAccount


def _now(now: datetime | None) -> datetime:
    return now if now is not None else datetime.now(timezone.utc)


class SessionRepository:
    """Read/write operations on the ``ussd_sessions`` table."""

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create_session(
        self,
        db: AsyncSession,
        *,
        session_id: str,
        phone_number: str,
        service_code: str,
        provider: str,
        network_code: str | None,
        timeout: timedelta,
        now: datetime | None = None,
    ) -> UssdSession:
        """Insert a fresh session at level 1 with empty session data."""
        now = _now(now)
        session = UssdSession(
            session_id=session_id,
            phone_number=phone_number,
            service_code=service_code,
            provider=provider,
            network_code=network_code,
            current_level=1,
            session_data={},
            status=SessionStatus.ACTIVE,
            started_at=now,
            last_activity_at=now,
            expires_at=now + timeout,
        )
        db.add(session)
        await db.flush()
        return session

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def get_by_session_id(
        self, db: AsyncSession, session_id: str
    ) -> UssdSession | None:
        """Fetch a session by the gateway's session token."""
        stmt = select(UssdSession).where(UssdSession.session_id == session_id)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    async def touch(
        self,
        db: AsyncSession,
        session: UssdSession,
        *,
        timeout: timedelta,
        now: datetime | None = None,
    ) -> UssdSession:
        """Refresh ``last_activity_at`` and push ``expires_at`` forward.

        ``expires_at`` is kept at ``last_activity_at + timeout`` and is
        never moved backwards.
        """
        now = _now(now)
        if now > session.last_activity_at:
            session.last_activity_at = now
        candidate = session.last_activity_at + timeout
        if candidate > session.expires_at:
            session.expires_at = candidate
        await db.flush()
        return session

    async def save_progress(
        self,
        db: AsyncSession,
        session: UssdSession,
        *,
        level: int,
        session_data: dict[str, Any],
        timeout: timedelta,
        now: datetime | None = None,
    ) -> UssdSession:
        """Persist the post-transition menu position and selections."""
        session.current_level = level
        # Fresh dict so SQLAlchemy detects the JSONB change
        session.session_data = dict(session_data)
        return await self.touch(db, session, timeout=timeout, now=now)

    async def mark_terminal(
        self,
        db: AsyncSession,
        session: UssdSession,
        status: SessionStatus,
        *,
        reason: str,
        now: datetime | None = None,
    ) -> UssdSession:
        """Move an active session to a terminal status.

        Raises:
            ValueError: if ``status`` is not terminal, or the session
                already ended with a different status.
        """
        status = SessionStatus(status)
        if not status.is_terminal:
            raise ValueError("mark_terminal only accepts terminal statuses")
        current = SessionStatus(session.status)
        if current.is_terminal:
            if current is status:
                return session
            raise ValueError(
                f"Session {session.session_id} already ended as '{current.value}'"
            )
        session.status = status
        session.end_reason = reason
        session.ended_at = _now(now)
        await db.flush()
        return session

    async def expire_stale_sessions(
        self, db: AsyncSession, *, now: datetime | None = None
    ) -> int:
        """Bulk-mark active sessions whose ``expires_at`` has been reached as expired.

        Returns the number of rows affected.  Rows are kept for audit.
        """
        now = _now(now)
        stmt = (
            update(UssdSession)
            .where(
                UssdSession.status == SessionStatus.ACTIVE,
                UssdSession.expires_at <= now,
            )
            .values(
                status=SessionStatus.EXPIRED,
                end_reason="timeout",
                ended_at=now,
            )
        )
        result = await db.execute(stmt)
        await db.flush()
        return result.rowcount or 0


class UserRepository:
    """Hospital and supplier lookups on ``user_accounts``."""

    async def get_by_id(
        self, db: AsyncSession, user_id: uuid.UUID
    ) -> UserAccount | None:
        return await db.get(UserAccount, user_id)

    async def get_hospital_by_phone(
        self, db: AsyncSession, phone_number: str
    ) -> UserAccount | None:
        """Return the hospital registered to ``phone_number``, if any."""
        stmt = (
            select(UserAccount)
            .where(
                UserAccount.phone_number == phone_number,
                UserAccount.role == UserRole.HOSPITAL,
            )
            .order_by(UserAccount.created_at.asc())
            .limit(1)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def create_hospital(
        self,
        db: AsyncSession,
        *,
        phone_number: str,
        name: str,
        facility_name: str,
        location: str,
    ) -> UserAccount:
        """Insert a hospital account created by the USSD registration flow."""
        user = UserAccount(
            role=UserRole.HOSPITAL,
            phone_number=phone_number,
            name=name,
            facility_name=facility_name,
            location=location,
        )
        db.add(user)
        await db.flush()
        return user

    async def list_suppliers(self, db: AsyncSession) -> list[UserAccount]:
        stmt = (
            select(UserAccount)
            .where(UserAccount.role == UserRole.SUPPLIER)
            .order_by(UserAccount.created_at.asc())
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def get_many(
        self, db: AsyncSession, user_ids: Iterable[uuid.UUID]
    ) -> list[UserAccount]:
        ids = list(user_ids)
        if not ids:
            return []
        stmt = select(UserAccount).where(UserAccount.id.in_(ids))
        result = await db.execute(stmt)
        return list(result.scalars().all())


class DrugRepository:
    """Read access to the drug catalogue."""

    async def list_drugs(self, db: AsyncSession) -> list[Drug]:
        stmt = select(Drug).order_by(Drug.category.asc(), Drug.name.asc())
        result = await db.execute(stmt)
        return list(result.scalars().all())


class AlertRepository:
    """Create and read ``stock_alerts`` rows."""

    async def create_alert(
        self,
        db: AsyncSession,
        *,
        hospital_id: uuid.UUID,
        hospital_name: str,
        facility_name: str,
        drugs: list[dict[str, Any]],
        overall_urgency: str,
        location: dict[str, Any] | None,
        session_id: str | None = None,
        reporter_phone: str | None = None,
        source: str = "ussd",
    ) -> StockAlert:
        """Insert a pending alert.  The caller must commit."""
        alert = StockAlert(
            hospital_id=hospital_id,
            hospital_name=hospital_name,
            facility_name=facility_name,
            drugs=drugs,
            overall_urgency=overall_urgency,
            location=location,
            status=AlertStatus.PENDING,
            source=source,
            session_id=session_id,
            reporter_phone=reporter_phone,
        )
        db.add(alert)
        await db.flush()
        return alert

    async def get_by_id(
        self, db: AsyncSession, alert_id: uuid.UUID
    ) -> StockAlert | None:
        return await db.get(StockAlert, alert_id)

    async def list_recent_by_hospital(
        self, db: AsyncSession, hospital_id: uuid.UUID, *, limit: int = 3
    ) -> list[StockAlert]:
        """Most recent alerts for a hospital, newest first."""
        stmt = (
            select(StockAlert)
            .where(StockAlert.hospital_id == hospital_id)
            .order_by(StockAlert.created_at.desc())
            .limit(limit)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())


class PreferenceRepository:
    """Read access to ``supplier_preferences``."""

    async def list_all(self, db: AsyncSession) -> list[SupplierPreference]:
        result = await db.execute(select(SupplierPreference))
        return list(result.scalars().all())

    async def list_for_suppliers(
        self, db: AsyncSession, supplier_ids: Iterable[uuid.UUID]
    ) -> list[SupplierPreference]:
        ids = list(supplier_ids)
        if not ids:
            return []
        stmt = select(SupplierPreference).where(
            SupplierPreference.supplier_id.in_(ids)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())


class DeliveryRepository:
    """Append-only writes to ``alert_distributions`` and ``airtime_rewards``."""

    async def add_records(
        self, db: AsyncSession, records: list[AlertDistribution]
    ) -> list[AlertDistribution]:
        db.add_all(records)
        await db.flush()
        return records

    async def get_by_id(
        self, db: AsyncSession, record_id: uuid.UUID
    ) -> AlertDistribution | None:
        return await db.get(AlertDistribution, record_id)

    async def list_by_alert(
        self, db: AsyncSession, alert_id: uuid.UUID
    ) -> list[AlertDistribution]:
        stmt = (
            select(AlertDistribution)
            .where(AlertDistribution.alert_id == alert_id)
            .order_by(AlertDistribution.created_at.asc())
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def record_retry(
        self,
        db: AsyncSession,
        record: AlertDistribution,
        *,
        status: str,
        message_id: str | None,
        cost: str | None,
        failure_reason: str | None,
        now: datetime | None = None,
    ) -> AlertDistribution:
        """Apply the outcome of an explicit retry to an existing record."""
        now = _now(now)
        record.status = status
        record.message_id = message_id
        record.cost = cost
        record.failure_reason = failure_reason
        record.retry_count = (record.retry_count or 0) + 1
        record.last_retry_at = now
        if failure_reason is None:
            record.sent_at = now
        await db.flush()
        return record

    async def add_reward(
        self, db: AsyncSession, reward: AirtimeReward
    ) -> AirtimeReward:
        db.add(reward)
        await db.flush()
        return reward

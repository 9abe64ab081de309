"""SessionRepository tests — the structural session invariants.

The repository runs against the AsyncMock database; rows are plain
``MockSessionRow`` instances since the methods only read and assign
attributes before flushing.
"""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from helpers.mocks import NOW, MockSessionRow
from stockalert_db.models.enums import SessionStatus
from stockalert_db.models.session import UssdSession
from stockalert_db.repository import SessionRepository

TIMEOUT = timedelta(seconds=180)


@pytest.fixture
def repo():
    return SessionRepository()


@pytest.fixture
def row():
    return MockSessionRow(session_id="ATUid_repo")


class TestCreate:

    @pytest.mark.asyncio
    async def test_new_session_starts_at_welcome(self, repo, mock_db):
        session = await repo.create_session(
            mock_db,
            session_id="ATUid_new",
            phone_number="+254712345678",
            service_code="*789*12345#",
            provider="safaricom",
            network_code="63902",
            timeout=TIMEOUT,
            now=NOW,
        )
        assert isinstance(session, UssdSession)
        assert session.current_level == 1
        assert session.session_data == {}
        assert session.status == SessionStatus.ACTIVE
        assert session.expires_at == NOW + TIMEOUT
        mock_db.add.assert_called_once_with(session)
        mock_db.flush.assert_awaited_once()


class TestTouch:

    @pytest.mark.asyncio
    async def test_moves_activity_and_expiry_forward(self, repo, mock_db, row):
        later = NOW + timedelta(seconds=30)
        await repo.touch(mock_db, row, timeout=TIMEOUT, now=later)
        assert row.last_activity_at == later
        assert row.expires_at == later + TIMEOUT
        mock_db.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_earlier_clock_changes_nothing(self, repo, mock_db, row):
        later = NOW + timedelta(seconds=60)
        await repo.touch(mock_db, row, timeout=TIMEOUT, now=later)

        await repo.touch(mock_db, row, timeout=TIMEOUT, now=NOW - timedelta(minutes=5))
        assert row.last_activity_at == later
        assert row.expires_at == later + TIMEOUT

    @pytest.mark.asyncio
    async def test_shorter_timeout_never_pulls_expiry_back(self, repo, mock_db, row):
        before = row.expires_at
        await repo.touch(mock_db, row, timeout=timedelta(seconds=10), now=NOW)
        assert row.expires_at == before


class TestSaveProgress:

    @pytest.mark.asyncio
    async def test_stores_level_and_copy_of_data(self, repo, mock_db, row):
        data = {"flow": "reporting", "categories": ["Analgesics"]}
        later = NOW + timedelta(seconds=20)
        await repo.save_progress(
            mock_db, row, level=3, session_data=data, timeout=TIMEOUT, now=later,
        )
        assert row.current_level == 3
        assert row.session_data == data
        assert row.session_data is not data
        assert row.expires_at == later + TIMEOUT


class TestMarkTerminal:

    @pytest.mark.asyncio
    async def test_ends_active_session(self, repo, mock_db, row):
        await repo.mark_terminal(
            mock_db, row, SessionStatus.COMPLETED, reason="alert_submitted", now=NOW,
        )
        assert row.status == SessionStatus.COMPLETED
        assert row.end_reason == "alert_submitted"
        assert row.ended_at == NOW
        mock_db.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_active_is_not_a_terminal_status(self, repo, mock_db, row):
        with pytest.raises(ValueError, match="terminal statuses"):
            await repo.mark_terminal(mock_db, row, SessionStatus.ACTIVE, reason="reopen")
        assert row.status == SessionStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_terminal_session_cannot_be_reactivated(self, repo, mock_db):
        row = MockSessionRow(status=SessionStatus.EXPIRED, end_reason="timeout")
        with pytest.raises(ValueError):
            await repo.mark_terminal(mock_db, row, SessionStatus.ACTIVE, reason="reopen")
        assert row.status == SessionStatus.EXPIRED

    @pytest.mark.asyncio
    async def test_different_terminal_status_is_rejected(self, repo, mock_db):
        row = MockSessionRow(
            session_id="ATUid_done", status=SessionStatus.COMPLETED,
            end_reason="alert_submitted", ended_at=NOW,
        )
        with pytest.raises(ValueError, match="already ended as 'completed'"):
            await repo.mark_terminal(mock_db, row, SessionStatus.EXPIRED, reason="timeout")
        assert row.status == SessionStatus.COMPLETED
        assert row.end_reason == "alert_submitted"
        mock_db.flush.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_same_terminal_status_is_a_no_op(self, repo, mock_db):
        row = MockSessionRow(
            status=SessionStatus.CANCELLED, end_reason="exit", ended_at=NOW,
        )
        later = NOW + timedelta(minutes=1)
        result = await repo.mark_terminal(
            mock_db, row, SessionStatus.CANCELLED, reason="internal_error", now=later,
        )
        assert result is row
        assert row.end_reason == "exit"
        assert row.ended_at == NOW
        mock_db.flush.assert_not_awaited()


class TestExpireStale:

    @pytest.mark.asyncio
    async def test_reports_affected_rows(self, repo, mock_db):
        mock_db.execute.return_value = MagicMock(rowcount=2)
        assert await repo.expire_stale_sessions(mock_db, now=NOW) == 2
        mock_db.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_session_at_deadline_is_stale(self, repo, mock_db):
        mock_db.execute.return_value = MagicMock(rowcount=0)
        await repo.expire_stale_sessions(mock_db, now=NOW)
        stmt = mock_db.execute.await_args.args[0]
        sql = str(stmt.compile(dialect=postgresql.dialect()))
        assert "ussd_sessions.expires_at <=" in sql

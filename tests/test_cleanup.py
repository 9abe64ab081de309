"""Stale-session sweep used by the CLI and the app's background task."""

import asyncio
import contextlib
from datetime import datetime, timedelta, timezone

import pytest

from helpers.mocks import MockSessionRow
from stockalert_db import repository
from stockalert_db.models.enums import SessionStatus
from stockalert_server.cleanup import expire_once, periodic_cleanup


@pytest.fixture
def patched_repo(monkeypatch, session_repo):
    monkeypatch.setattr(repository, "SessionRepository", lambda: session_repo)
    return session_repo


class TestExpireOnce:

    @pytest.mark.asyncio
    async def test_expires_and_commits(self, patched_repo, session_factory, mock_db):
        past = datetime.now(timezone.utc) - timedelta(minutes=10)
        patched_repo.sessions["old"] = MockSessionRow(session_id="old", expires_at=past)

        affected = await expire_once(session_factory)

        assert affected == 1
        assert patched_repo.sessions["old"].status == SessionStatus.EXPIRED
        assert patched_repo.sessions["old"].end_reason == "timeout"
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_nothing_to_do(self, patched_repo, session_factory):
        assert await expire_once(session_factory) == 0


class TestPeriodicCleanup:

    @pytest.mark.asyncio
    async def test_errors_do_not_stop_the_loop(self, monkeypatch, session_factory):
        calls = []

        async def flaky(db, *, now=None):
            calls.append(1)
            raise RuntimeError("db down")

        class BrokenRepo:
            expire_stale_sessions = staticmethod(flaky)

        monkeypatch.setattr(repository, "SessionRepository", BrokenRepo)
        task = asyncio.create_task(periodic_cleanup(session_factory, 0))
        while len(calls) < 3:
            await asyncio.sleep(0)
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        assert len(calls) >= 3

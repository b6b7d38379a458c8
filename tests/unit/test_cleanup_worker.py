"""
Unit tests for the background cleanup worker
"""

import asyncio
from datetime import timedelta
from unittest.mock import Mock

import pytest

from admin_auth.background.cleanup_worker import CleanupWorker
from tests.support import ADMIN_USER_ID, session_info


@pytest.fixture
def worker(services):
    return CleanupWorker(services.mfa, services.sessions, interval_seconds=60)


class TestRunOnce:

    def test_quiet_cycle(self, worker):
        result = worker.run_once()

        assert result.purged_tokens == 0
        assert result.expired_sessions == 0

    def test_expires_stale_state(self, worker, services, add_session, clock, temp_store):
        services.mfa.issue("system-admin", ADMIN_USER_ID, session_info())
        add_session(age=timedelta(hours=5), active=True)
        add_session(age=timedelta(hours=1), active=True)
        clock.advance(minutes=11)

        result = worker.run_once()

        assert result.purged_tokens == 1
        assert result.expired_sessions == 1
        assert len(temp_store) == 0


class TestLifecycle:

    def test_start_runs_cycles_until_stopped(self):
        mfa = Mock()
        mfa.purge_expired.return_value = 0
        sessions = Mock()
        sessions.deactivate_expired.return_value = 0
        worker = CleanupWorker(mfa, sessions, interval_seconds=3600)

        async def scenario():
            await worker.start()
            for _ in range(100):
                if sessions.deactivate_expired.called:
                    break
                await asyncio.sleep(0.01)
            await worker.stop()

        asyncio.run(scenario())

        mfa.purge_expired.assert_called_once()
        sessions.deactivate_expired.assert_called_once()
        assert worker.running is False
        assert worker.task.done()

    def test_errors_do_not_stop_the_loop(self):
        mfa = Mock()
        mfa.purge_expired.side_effect = RuntimeError("store down")
        worker = CleanupWorker(mfa, Mock(), interval_seconds=3600)

        async def scenario():
            await worker.start()
            for _ in range(100):
                if mfa.purge_expired.called:
                    break
                await asyncio.sleep(0.01)
            assert worker.running
            await worker.stop()

        asyncio.run(scenario())

        assert worker.task.done()

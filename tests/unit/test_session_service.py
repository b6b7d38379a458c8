"""
Unit tests for the admin session manager
"""

from datetime import timedelta

import pytest
from sqlalchemy import select

from admin_auth.models import AdminSession, AuditAction, AuditLog
from tests.support import ADMIN_USER_ID, ALLOWED_IP, CHROME_UA, OUTSIDE_IP


@pytest.fixture
def sessions(services):
    return services.sessions


@pytest.fixture
def active_session(sessions, session_factory):
    with session_factory() as db:
        session = sessions.create(db, ADMIN_USER_ID, ALLOWED_IP, CHROME_UA)
        db.commit()
    return session


def reload(session_factory, token):
    with session_factory() as db:
        return db.scalars(select(AdminSession).where(AdminSession.token == token)).one()


def audit_logs(session_factory, action):
    with session_factory() as db:
        return list(db.scalars(select(AuditLog).where(AuditLog.action == action.value)))


class TestCreate:

    def test_create_sets_expiry(self, active_session, clock):
        assert active_session.is_active is True
        assert len(active_session.token) == 64
        assert active_session.expires_at == clock() + timedelta(minutes=240)
        assert active_session.last_activity == clock()


class TestValidate:
    """Test validation, expiry and IP binding"""

    def test_valid_session(self, sessions, active_session):
        assert sessions.validate(active_session.token, ALLOWED_IP) is True

    def test_unknown_token(self, sessions):
        assert sessions.validate("f" * 64, ALLOWED_IP) is False
        assert sessions.validate("", ALLOWED_IP) is False

    def test_expired_session_is_deactivated(self, sessions, active_session, clock, session_factory):
        clock.advance(minutes=240)

        assert sessions.validate(active_session.token, ALLOWED_IP) is False
        assert reload(session_factory, active_session.token).is_active is False

    def test_ip_mismatch_deactivates_and_audits(self, sessions, active_session, session_factory):
        # Act
        result = sessions.validate(active_session.token, OUTSIDE_IP)

        # Assert
        assert result is False
        assert reload(session_factory, active_session.token).is_active is False

        logs = audit_logs(session_factory, AuditAction.SUSPICIOUS_ACCESS)
        assert len(logs) == 1
        assert logs[0].ip_address == OUTSIDE_IP
        assert logs[0].details["original_ip"] == ALLOWED_IP
        assert logs[0].details["session_id"] == active_session.session_id

        # The hijacked token stays dead for the legitimate IP too
        assert sessions.validate(active_session.token, ALLOWED_IP) is False

    def test_activity_refresh_is_throttled(self, sessions, active_session, clock, session_factory):
        start = clock()

        clock.advance(seconds=200)
        sessions.validate(active_session.token, ALLOWED_IP)
        assert reload(session_factory, active_session.token).last_activity == start

        clock.advance(seconds=200)
        sessions.validate(active_session.token, ALLOWED_IP)
        assert reload(session_factory, active_session.token).last_activity == clock()


class TestInvalidate:

    def test_invalidate(self, sessions, active_session, session_factory):
        assert sessions.invalidate(active_session.token) is True

        assert sessions.validate(active_session.token, ALLOWED_IP) is False
        assert len(audit_logs(session_factory, AuditAction.ADMIN_LOGOUT)) == 1

    def test_invalidate_is_idempotent(self, sessions, active_session, session_factory):
        sessions.invalidate(active_session.token)

        assert sessions.invalidate(active_session.token) is False
        assert sessions.invalidate("unknown") is False
        assert len(audit_logs(session_factory, AuditAction.ADMIN_LOGOUT)) == 1


class TestHousekeeping:

    def test_recent_sessions(self, sessions, add_session, session_factory, clock):
        add_session(age=timedelta(days=1))
        add_session(age=timedelta(days=40))
        add_session(age=timedelta(hours=1), user_id="someone-else")

        with session_factory() as db:
            recent = sessions.recent_sessions(db, ADMIN_USER_ID, since=clock() - timedelta(days=30))

        assert len(recent) == 1

    def test_deactivate_expired(self, sessions, add_session, active_session):
        add_session(age=timedelta(hours=5), active=True)

        assert sessions.deactivate_expired() == 1

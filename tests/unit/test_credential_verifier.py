"""
Unit tests for the credential verifier and admin key provisioning
"""

import threading

import pytest
from sqlalchemy import select

from admin_auth.core.errors import ErrorCode, SystemAdminError
from admin_auth.models import AdminKey, AuditAction, AuditLog
from admin_auth.utils.security import verify_admin_key
from tests.support import ADMIN_SECRET, ADMIN_USER_ID


def load_key(session_factory):
    with session_factory() as db:
        return db.scalars(select(AdminKey)).one()


class TestLockout:
    """Test failed-attempt accounting"""

    def test_record_failure_increments(self, services, admin_key, session_factory):
        verifier = services.verifier
        with session_factory() as db:
            key = verifier.load(db)
            assert verifier.record_failure(db, key) == 1
            assert verifier.record_failure(db, key) == 2
            db.commit()

        assert load_key(session_factory).attempts == 2

    def test_locked_at_max_attempts(self, services, admin_key, session_factory):
        verifier = services.verifier
        with session_factory() as db:
            key = verifier.load(db)
            for _ in range(4):
                verifier.record_failure(db, key)
            assert not verifier.is_locked(key)

            verifier.record_failure(db, key)
            assert verifier.is_locked(key)

            with pytest.raises(SystemAdminError) as exc_info:
                verifier.ensure_not_locked(key)
            assert exc_info.value.code == ErrorCode.MAX_ATTEMPTS_EXCEEDED
            assert exc_info.value.status_code == 429

    def test_reset_attempts(self, services, admin_key, session_factory):
        verifier = services.verifier
        with session_factory() as db:
            key = verifier.load(db)
            verifier.record_failure(db, key)
            verifier.reset_attempts(db, key)
            db.commit()
            assert key.attempts == 0

        assert load_key(session_factory).attempts == 0

    def test_reset_lockout(self, services, admin_key, session_factory):
        with session_factory() as db:
            key = services.verifier.load(db)
            for _ in range(5):
                services.verifier.record_failure(db, key)
            db.commit()

        assert services.verifier.reset_lockout() is True
        assert load_key(session_factory).attempts == 0

    def test_reset_lockout_without_key(self, services):
        assert services.verifier.reset_lockout() is False

    def test_key_lock_is_per_key(self, services):
        verifier = services.verifier
        acquired = threading.Event()

        with verifier.key_lock("a"):
            def other():
                with verifier.key_lock("b"):
                    acquired.set()

            thread = threading.Thread(target=other)
            thread.start()
            thread.join(timeout=2)

        assert acquired.is_set()


class TestProvisioning:
    """Test admin key creation and rotation"""

    def test_provision_creates_key(self, services, admin_key, session_factory):
        key = load_key(session_factory)

        assert admin_key.rotated is False
        assert admin_key.secret == ADMIN_SECRET
        assert key.user_id == ADMIN_USER_ID
        assert key.key_hash != ADMIN_SECRET
        assert verify_admin_key(ADMIN_SECRET, key.key_hash)
        assert key.allowed_ips == ["10.0.0.0/8"]
        assert key.attempts == 0

    def test_provision_generates_secret(self, services):
        provisioned = services.admin_keys.provision()

        assert len(provisioned.secret) == 128
        assert provisioned.allowed_ips == ["*"]

    def test_rotation_replaces_hash_and_resets_attempts(self, services, admin_key, session_factory, clock):
        with session_factory() as db:
            key = services.verifier.load(db)
            for _ in range(5):
                services.verifier.record_failure(db, key)
            db.commit()

        rotated = services.admin_keys.provision(allowed_ips=["*"], secret="b" * 128)

        key = load_key(session_factory)
        assert rotated.rotated is True
        assert rotated.user_id == ADMIN_USER_ID
        assert key.attempts == 0
        assert key.last_rotated_at == clock()
        assert not verify_admin_key(ADMIN_SECRET, key.key_hash)
        assert verify_admin_key("b" * 128, key.key_hash)

        with session_factory() as db:
            actions = db.scalars(select(AuditLog.action)).all()
        assert actions.count(AuditAction.ADMIN_KEY_ROTATED.value) == 2

    def test_provision_rejects_invalid_entries(self, services):
        with pytest.raises(SystemAdminError) as exc_info:
            services.admin_keys.provision(allowed_ips=["10.0.0.0/40"])
        assert exc_info.value.code == ErrorCode.VALIDATION_ERROR

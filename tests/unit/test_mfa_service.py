"""
Unit tests for MFA step-up handling

Tests:
- Temp token issue / consume / expiry
- In-memory and Redis-backed pending stores
- Second-factor verifiers
"""

import json
from datetime import timedelta
from unittest.mock import Mock

import pyotp
import pytest

from admin_auth.core.errors import ErrorCode, SystemAdminError
from admin_auth.services.mfa_service import (
    FormatMfaVerifier,
    MfaStepUpHandler,
    PendingMfa,
    RedisTempTokenStore,
    TotpMfaVerifier,
)
from tests.support import ADMIN_USER_ID, ALLOWED_IP, CHROME_UA, TOKYO, session_info


@pytest.fixture
def handler(temp_store, clock):
    return MfaStepUpHandler(temp_store, FormatMfaVerifier(), clock=clock, ttl_minutes=10)


class TestTempTokens:
    """Test the pending challenge lifecycle"""

    def test_issue_and_consume(self, handler, temp_store):
        # Act
        token = handler.issue("system-admin", ADMIN_USER_ID, session_info(geo_location=TOKYO), 65, ["unknown_ip"])

        # Assert
        assert token.startswith("mfa_")
        assert len(temp_store) == 1

        pending = handler.consume(token)
        assert pending.user_id == ADMIN_USER_ID
        assert pending.ip_address == ALLOWED_IP
        assert pending.user_agent == CHROME_UA
        assert pending.risk_score == 65
        assert pending.session_info().geo_location == TOKYO
        assert len(temp_store) == 0

    def test_consume_is_single_use(self, handler):
        token = handler.issue("system-admin", ADMIN_USER_ID, session_info())
        handler.consume(token)

        with pytest.raises(SystemAdminError) as exc_info:
            handler.consume(token)
        assert exc_info.value.code == ErrorCode.INVALID_TOKEN

    def test_expired_token_is_rejected(self, handler, clock, temp_store):
        token = handler.issue("system-admin", ADMIN_USER_ID, session_info())

        clock.advance(minutes=10)

        with pytest.raises(SystemAdminError) as exc_info:
            handler.peek(token)
        assert exc_info.value.code == ErrorCode.INVALID_TOKEN
        assert len(temp_store) == 0

    def test_token_valid_just_before_expiry(self, handler, clock):
        token = handler.issue("system-admin", ADMIN_USER_ID, session_info())
        clock.advance(minutes=9, seconds=59)
        assert handler.peek(token).user_id == ADMIN_USER_ID

    def test_unknown_and_empty_tokens(self, handler):
        for token in ("mfa_unknown", ""):
            with pytest.raises(SystemAdminError):
                handler.peek(token)

    def test_purge_expired(self, handler, clock, temp_store):
        handler.issue("system-admin", ADMIN_USER_ID, session_info())
        clock.advance(minutes=5)
        live = handler.issue("system-admin", ADMIN_USER_ID, session_info())
        clock.advance(minutes=6)

        assert handler.purge_expired() == 1
        assert handler.peek(live)

    def test_discard(self, handler, temp_store):
        token = handler.issue("system-admin", ADMIN_USER_ID, session_info())
        handler.discard(token)
        assert len(temp_store) == 0


class TestRedisStore:
    """Test the shared pending store against a mocked Redis client"""

    def test_put_get_pop(self, clock):
        redis = Mock()
        store = RedisTempTokenStore(redis, clock=clock)
        pending = PendingMfa(
            key_id="system-admin",
            user_id=ADMIN_USER_ID,
            expires_at=clock() + timedelta(minutes=10),
            ip_address=ALLOWED_IP
        )

        store.put("mfa_abc", pending, 600)

        redis.set_json.assert_called_once_with("mfa_pending:mfa_abc", pending.to_dict(), ttl=600)

        redis.getdel.return_value = json.dumps(pending.to_dict())
        assert store.pop("mfa_abc") == pending
        redis.getdel.assert_called_once_with("mfa_pending:mfa_abc")

    def test_malformed_record_is_ignored(self, clock):
        redis = Mock()
        redis.get.return_value = "{not json"
        store = RedisTempTokenStore(redis, clock=clock)

        assert store.get("mfa_abc") is None

    def test_expired_record_is_ignored(self, clock):
        redis = Mock()
        pending = PendingMfa(
            key_id="system-admin",
            user_id=ADMIN_USER_ID,
            expires_at=clock() - timedelta(seconds=1),
            ip_address=ALLOWED_IP
        )
        redis.get.return_value = json.dumps(pending.to_dict())

        assert RedisTempTokenStore(redis, clock=clock).get("mfa_abc") is None


class TestVerifiers:
    """Test second-factor verifiers"""

    @pytest.mark.parametrize("code,expected", [
        ("123456", True),
        ("12345", False),
        ("1234567", False),
        ("12a456", False),
        ("", False),
    ])
    def test_format_verifier(self, code, expected):
        assert FormatMfaVerifier().verify(ADMIN_USER_ID, code) is expected

    def test_totp_verifier(self):
        secret = pyotp.random_base32()
        verifier = TotpMfaVerifier(secret)

        assert verifier.verify(ADMIN_USER_ID, pyotp.TOTP(secret).now())
        assert not verifier.verify(ADMIN_USER_ID, "abcdef")

    def test_handler_verify_code_rejects_missing(self, handler):
        assert handler.verify_code(ADMIN_USER_ID, None) is False
        assert handler.verify_code(ADMIN_USER_ID, "654321") is True

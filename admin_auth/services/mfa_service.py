"""
MFA Step-Up Service

Pending-challenge storage and second-factor verification for admin logins
that score above the step-up threshold.

State machine per temp token: NONE -> PENDING -> CONSUMED | EXPIRED.
Expiry is lazy: it is checked whenever a token is read.
"""

import json
import logging
import re
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

import pyotp

from admin_auth import metrics
from admin_auth.core.config import settings
from admin_auth.core.errors import invalid_token
from admin_auth.core.redis_client import RedisClient
from admin_auth.schemas.common import GeoLocation, SessionInfo
from admin_auth.utils.security import generate_temp_token, utcnow

logger = logging.getLogger(__name__)

MFA_CODE_RE = re.compile(r"^\d{6}$")


@dataclass
class PendingMfa:
    """A pending step-up challenge. The admin key secret is never stored."""
    key_id: str
    user_id: str
    expires_at: datetime
    ip_address: str
    user_agent: Optional[str] = None
    geo_location: Optional[Dict[str, Any]] = None
    risk_score: int = 0
    risk_factors: List[str] = field(default_factory=list)

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    def session_info(self) -> SessionInfo:
        return SessionInfo(
            ip_address=self.ip_address,
            user_agent=self.user_agent,
            geo_location=GeoLocation(**self.geo_location) if self.geo_location else None
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["expires_at"] = self.expires_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PendingMfa":
        data = dict(data)
        data["expires_at"] = datetime.fromisoformat(data["expires_at"])
        return cls(**data)


# ============================================================================
# Temp token stores
# ============================================================================

class TempTokenStore:
    """Storage contract for pending MFA challenges"""

    def put(self, token: str, pending: PendingMfa, ttl_seconds: int) -> None:
        raise NotImplementedError

    def get(self, token: str) -> Optional[PendingMfa]:
        """Live record or None; expired records are dropped on read"""
        raise NotImplementedError

    def pop(self, token: str) -> Optional[PendingMfa]:
        """Remove and return a live record; None if missing, expired or already taken"""
        raise NotImplementedError

    def purge_expired(self) -> int:
        return 0


class InMemoryTempTokenStore(TempTokenStore):
    """
    Process-local store guarded by a lock

    Pending challenges do not survive a restart and are not shared between
    instances; use RedisTempTokenStore for multi-instance deployments.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self.clock = clock
        self._records: Dict[str, PendingMfa] = {}
        self._lock = threading.Lock()

    def put(self, token: str, pending: PendingMfa, ttl_seconds: int) -> None:
        with self._lock:
            self._records[token] = pending
            metrics.admin_pending_mfa_tokens.set(len(self._records))

    def get(self, token: str) -> Optional[PendingMfa]:
        with self._lock:
            return self._live(token)

    def pop(self, token: str) -> Optional[PendingMfa]:
        with self._lock:
            pending = self._live(token)
            if pending is not None:
                del self._records[token]
                metrics.admin_pending_mfa_tokens.set(len(self._records))
            return pending

    def purge_expired(self) -> int:
        now = self.clock()
        with self._lock:
            expired = [t for t, p in self._records.items() if p.is_expired(now)]
            for token in expired:
                del self._records[token]
            metrics.admin_pending_mfa_tokens.set(len(self._records))
        if expired:
            logger.info(f"Purged {len(expired)} expired MFA pending tokens")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def _live(self, token: str) -> Optional[PendingMfa]:
        # Caller holds the lock
        pending = self._records.get(token)
        if pending is None:
            return None
        if pending.is_expired(self.clock()):
            del self._records[token]
            metrics.admin_pending_mfa_tokens.set(len(self._records))
            return None
        return pending


class RedisTempTokenStore(TempTokenStore):
    """Shared store: one JSON value per token under mfa_pending:{token} with a TTL"""

    KEY_PREFIX = "mfa_pending:"

    def __init__(self, redis: RedisClient, clock: Callable[[], datetime] = utcnow):
        self.redis = redis
        self.clock = clock

    def _key(self, token: str) -> str:
        return f"{self.KEY_PREFIX}{token}"

    def put(self, token: str, pending: PendingMfa, ttl_seconds: int) -> None:
        self.redis.set_json(self._key(token), pending.to_dict(), ttl=ttl_seconds)

    def get(self, token: str) -> Optional[PendingMfa]:
        return self._decode(self.redis.get(self._key(token)))

    def pop(self, token: str) -> Optional[PendingMfa]:
        # GETDEL makes redemption single-use across instances
        return self._decode(self.redis.getdel(self._key(token)))

    def _decode(self, raw: Optional[str]) -> Optional[PendingMfa]:
        if not raw:
            return None
        try:
            pending = PendingMfa.from_dict(json.loads(raw))
        except (ValueError, TypeError, KeyError) as e:
            logger.warning(f"Discarding malformed MFA pending record: {e}")
            return None
        if pending.is_expired(self.clock()):
            return None
        return pending


# ============================================================================
# Second-factor verifiers
# ============================================================================

class MfaVerifier:
    """Second-factor check for an administrator"""

    def verify(self, user_id: str, code: str) -> bool:
        raise NotImplementedError


class FormatMfaVerifier(MfaVerifier):
    """Accepts any well-formed 6-digit code; stands in for an external MFA provider"""

    def verify(self, user_id: str, code: str) -> bool:
        return bool(code) and MFA_CODE_RE.match(code) is not None


class TotpMfaVerifier(MfaVerifier):
    """RFC 6238 TOTP against a shared administrator secret"""

    def __init__(self, secret: str, valid_window: int = 1):
        self.totp = pyotp.TOTP(secret)
        self.valid_window = valid_window

    def verify(self, user_id: str, code: str) -> bool:
        if not code or not MFA_CODE_RE.match(code):
            return False
        return self.totp.verify(code, valid_window=self.valid_window)


def build_mfa_verifier() -> MfaVerifier:
    """TOTP when ADMIN_MFA_TOTP_SECRET is configured, format-only otherwise"""
    if settings.ADMIN_MFA_TOTP_SECRET:
        return TotpMfaVerifier(settings.ADMIN_MFA_TOTP_SECRET)
    logger.warning("ADMIN_MFA_TOTP_SECRET not set; MFA codes are only checked for format")
    return FormatMfaVerifier()


# ============================================================================
# Step-up handler
# ============================================================================

class MfaStepUpHandler:
    """Issues and redeems single-use MFA pending tokens"""

    def __init__(
        self,
        store: TempTokenStore,
        verifier: MfaVerifier,
        clock: Callable[[], datetime] = utcnow,
        ttl_minutes: Optional[int] = None
    ):
        self.store = store
        self.verifier = verifier
        self.clock = clock
        self.ttl = timedelta(minutes=settings.ADMIN_TEMP_TOKEN_TTL_MINUTES if ttl_minutes is None else ttl_minutes)

    def issue(
        self,
        key_id: str,
        user_id: str,
        session_info: SessionInfo,
        risk_score: int = 0,
        risk_factors: Optional[List[str]] = None
    ) -> str:
        """
        Open a step-up challenge

        Args:
            key_id: Admin key that passed credential verification
            user_id: Owner of the key
            session_info: Context snapshot; redemption must come from the same IP
            risk_score: Score that triggered the challenge
            risk_factors: Factors behind the score

        Returns:
            Temp token ('mfa_' + 64 hex characters)
        """
        token = generate_temp_token()
        pending = PendingMfa(
            key_id=key_id,
            user_id=user_id,
            expires_at=self.clock() + self.ttl,
            ip_address=session_info.ip_address,
            user_agent=session_info.user_agent,
            geo_location=session_info.geo_location.model_dump() if session_info.geo_location else None,
            risk_score=risk_score,
            risk_factors=list(risk_factors or [])
        )
        self.store.put(token, pending, int(self.ttl.total_seconds()))
        return token

    def peek(self, token: str) -> PendingMfa:
        """
        Raises:
            SystemAdminError: INVALID_TOKEN if missing or expired
        """
        pending = self.store.get(token) if token else None
        if pending is None:
            raise invalid_token()
        return pending

    def consume(self, token: str) -> PendingMfa:
        """
        Take the token; a second call for the same token fails

        Raises:
            SystemAdminError: INVALID_TOKEN if missing, expired or already consumed
        """
        pending = self.store.pop(token) if token else None
        if pending is None:
            raise invalid_token()
        return pending

    def verify_code(self, user_id: str, code: Optional[str]) -> bool:
        return bool(code) and self.verifier.verify(user_id, code)

    def purge_expired(self) -> int:
        return self.store.purge_expired()

    def discard(self, token: str) -> None:
        """Drop a pending token without redeeming it"""
        if token:
            self.store.pop(token)

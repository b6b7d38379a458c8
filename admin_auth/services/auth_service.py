"""
Admin Authentication Service

Orchestrates system administrator login:
unauthenticated -> risk-evaluated -> MFA-pending -> authenticated -> session-active -> invalidated

Every attempt runs as one unit of work under a per-key lock: lockout check,
credential verification, risk evaluation, and either failure accounting or
attempt reset plus session creation, committed together. Audit entries are
written after the unit of work has committed or rolled back.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterator, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from admin_auth import metrics
from admin_auth.core.config import settings
from admin_auth.core.errors import (
    SystemAdminError,
    access_denied,
    auth_error,
    invalid_key,
    invalid_mfa,
    invalid_token,
    max_attempts_exceeded,
)
from admin_auth.models import AdminKey, AuditAction
from admin_auth.schemas.auth import AuthResult, MfaChallenge, SessionGrant
from admin_auth.schemas.common import GeoLocation, SessionInfo
from admin_auth.services.audit_service import AuditService
from admin_auth.services.credential_verifier import CredentialVerifier
from admin_auth.services.mfa_service import MfaStepUpHandler
from admin_auth.services.risk_evaluator import RiskAssessment, RiskContext, RiskEvaluator
from admin_auth.services.session_service import AdminSessionManager
from admin_auth.utils.security import mask_ip, utcnow

logger = logging.getLogger(__name__)


class AdminAuthService:
    """Service for system administrator authentication"""

    def __init__(
        self,
        session_factory: sessionmaker,
        verifier: CredentialVerifier,
        risk_evaluator: RiskEvaluator,
        mfa: MfaStepUpHandler,
        sessions: AdminSessionManager,
        audit: AuditService,
        clock: Callable[[], datetime] = utcnow,
        key_id: Optional[str] = None
    ):
        self.session_factory = session_factory
        self.verifier = verifier
        self.risk_evaluator = risk_evaluator
        self.mfa = mfa
        self.sessions = sessions
        self.audit = audit
        self.clock = clock
        self.key_id = key_id

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    @contextmanager
    def _unit_of_work(self, key_id: Optional[str], audit_events: List[Dict[str, Any]]) -> Iterator[Session]:
        """
        Per-key serialized transaction

        Domain failures still commit, so failed-attempt increments persist.
        Store failures roll back and surface as AUTH_ERROR. Queued audit events
        are flushed once the transaction is over.
        """
        try:
            with self.verifier.key_lock(key_id), self.session_factory() as db:
                try:
                    yield db
                    db.commit()
                except SystemAdminError:
                    self._commit_or_fail(db)
                    raise
                except SQLAlchemyError as e:
                    db.rollback()
                    logger.error(f"Admin authentication store failure: {e}")
                    metrics.admin_login_attempts_total.labels(status="error").inc()
                    raise auth_error()
        finally:
            for event in audit_events:
                self.audit.record(**event)

    def _commit_or_fail(self, db: Session) -> None:
        try:
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to persist failed-attempt state: {e}")
            raise auth_error()

    def _failure(
        self,
        audit_events: List[Dict[str, Any]],
        error: SystemAdminError,
        reason: str,
        session_info: SessionInfo,
        user_id: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None
    ) -> SystemAdminError:
        metadata = {"reason": reason, "user_agent": session_info.user_agent}
        metadata.update(extra or {})
        audit_events.append({
            "user_id": user_id,
            "action": AuditAction.ADMIN_LOGIN_FAILED,
            "ip_address": session_info.ip_address,
            "metadata": metadata,
        })
        metrics.admin_login_attempts_total.labels(status=reason).inc()
        return error

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def authenticate(self, secret: str, session_info: SessionInfo, mfa_code: Optional[str] = None) -> AuthResult:
        """
        Authenticate with the admin key

        Args:
            secret: Presented admin key
            session_info: Caller IP, user agent and optional geo-location
            mfa_code: Optional inline second factor

        Returns:
            SessionGrant on success, MfaChallenge when step-up is required

        Raises:
            SystemAdminError: INVALID_KEY, MAX_ATTEMPTS_EXCEEDED, ACCESS_DENIED,
                INVALID_MFA or AUTH_ERROR
        """
        logger.info(f"Admin authentication attempt from {mask_ip(session_info.ip_address)}")
        audit_events: List[Dict[str, Any]] = []

        with self._unit_of_work(self.key_id, audit_events) as db:
            key = self.verifier.load(db, self.key_id)
            if key is None:
                logger.warning(f"Admin login with no provisioned key from {mask_ip(session_info.ip_address)}")
                raise self._failure(audit_events, invalid_key(), "invalid_key", session_info)

            if self.verifier.is_locked(key):
                logger.warning(f"Locked admin key used from {mask_ip(session_info.ip_address)}")
                raise self._failure(audit_events, max_attempts_exceeded(), "locked", session_info, user_id=key.user_id)

            if not self.verifier.verify_secret(key, secret):
                attempts = self.verifier.record_failure(db, key)
                logger.warning(f"Invalid admin key attempt from {mask_ip(session_info.ip_address)}")
                raise self._failure(
                    audit_events, invalid_key(), "invalid_key", session_info,
                    user_id=key.user_id, extra={"attempts": attempts}
                )

            assessment = self._assess(db, key, session_info)
            risk_metadata = {"risk_score": assessment.risk_score, "risk_factors": assessment.factors}
            logger.info(
                f"Risk assessment for {key.user_id}: score={assessment.risk_score} "
                f"factors={assessment.factors} step_up={assessment.requires_additional_auth} "
                f"allow={assessment.allow_access}"
            )

            if not assessment.allow_access:
                self.verifier.record_failure(db, key)
                raise self._failure(
                    audit_events, access_denied(), "denied", session_info,
                    user_id=key.user_id, extra=risk_metadata
                )

            if assessment.requires_additional_auth and not mfa_code:
                temp_token = self.mfa.issue(
                    key.key_id, key.user_id, session_info,
                    risk_score=assessment.risk_score, risk_factors=assessment.factors
                )
                audit_events.append({
                    "user_id": key.user_id,
                    "action": AuditAction.ADMIN_MFA_REQUIRED,
                    "ip_address": session_info.ip_address,
                    "metadata": risk_metadata,
                })
                metrics.admin_login_attempts_total.labels(status="mfa_required").inc()
                result: AuthResult = MfaChallenge(
                    temp_token=temp_token,
                    risk_score=assessment.risk_score,
                    risk_factors=assessment.factors
                )
            else:
                if assessment.requires_additional_auth and not self.mfa.verify_code(key.user_id, mfa_code):
                    self.verifier.record_failure(db, key)
                    raise self._failure(
                        audit_events, invalid_mfa(), "invalid_mfa", session_info,
                        user_id=key.user_id, extra=risk_metadata
                    )

                result = self._open_session(db, key, session_info, assessment.risk_score)
                login_metadata = self._session_metadata(session_info)
                login_metadata.update(risk_metadata)
                login_metadata["used_mfa"] = assessment.requires_additional_auth

        if isinstance(result, SessionGrant):
            self.audit.record(
                key.user_id,
                AuditAction.ADMIN_LOGIN,
                ip_address=session_info.ip_address,
                metadata=login_metadata
            )
            metrics.admin_login_attempts_total.labels(status="success").inc()
            logger.info(f"Admin {key.user_id} authenticated from {mask_ip(session_info.ip_address)}")
        return result

    def verify_mfa_and_complete(self, temp_token: str, mfa_code: str, session_info: SessionInfo) -> SessionGrant:
        """
        Redeem an MFA pending token

        A wrong code counts as a failed attempt against the key and leaves the
        token redeemable until it expires. A redemption from a different IP
        than the one that opened the challenge burns the token.

        Raises:
            SystemAdminError: INVALID_TOKEN, INVALID_MFA, MAX_ATTEMPTS_EXCEEDED or AUTH_ERROR
        """
        pending = self.mfa.peek(temp_token)

        if pending.ip_address != session_info.ip_address:
            self.mfa.discard(temp_token)
            metrics.admin_mfa_verifications_total.labels(status="ip_mismatch").inc()
            logger.warning(
                f"MFA redemption IP mismatch: challenge from {mask_ip(pending.ip_address)}, "
                f"redeemed from {mask_ip(session_info.ip_address)}"
            )
            self.audit.record(
                pending.user_id,
                AuditAction.SUSPICIOUS_ACCESS,
                ip_address=session_info.ip_address,
                metadata={"original_ip": pending.ip_address, "reason": "mfa_ip_mismatch"}
            )
            raise invalid_token()

        audit_events: List[Dict[str, Any]] = []
        with self._unit_of_work(self.key_id, audit_events) as db:
            key = self.verifier.load(db, pending.key_id)
            if key is None:
                self.mfa.discard(temp_token)
                metrics.admin_mfa_verifications_total.labels(status="invalid_token").inc()
                raise invalid_token()

            if self.verifier.is_locked(key):
                raise self._failure(
                    audit_events, max_attempts_exceeded(), "locked", session_info,
                    user_id=pending.user_id, extra={"step": "verify_mfa"}
                )

            if not self.mfa.verify_code(pending.user_id, mfa_code):
                self.verifier.record_failure(db, key)
                metrics.admin_mfa_verifications_total.labels(status="invalid_code").inc()
                raise self._failure(
                    audit_events, invalid_mfa(), "invalid_mfa", session_info,
                    user_id=pending.user_id, extra={"step": "verify_mfa"}
                )

            try:
                self.mfa.consume(temp_token)
            except SystemAdminError:
                metrics.admin_mfa_verifications_total.labels(status="invalid_token").inc()
                raise

            grant = self._open_session(db, key, session_info, pending.risk_score)

        metadata = self._session_metadata(session_info)
        metadata.update({"used_mfa": True, "risk_score": pending.risk_score, "risk_factors": pending.risk_factors})
        self.audit.record(
            pending.user_id,
            AuditAction.ADMIN_MFA_LOGIN,
            ip_address=session_info.ip_address,
            metadata=metadata
        )
        metrics.admin_mfa_verifications_total.labels(status="success").inc()
        logger.info(f"Admin {pending.user_id} completed MFA step-up from {mask_ip(session_info.ip_address)}")
        return SessionGrant(token=grant.token, expires_at=grant.expires_at)

    def validate_session(self, token: str, ip_address: str) -> bool:
        return self.sessions.validate(token, ip_address)

    def invalidate_session(self, token: str) -> None:
        self.sessions.invalidate(token)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _assess(self, db: Session, key: AdminKey, session_info: SessionInfo) -> RiskAssessment:
        """Gather history for the key owner and score the attempt"""
        now = self.clock()
        recent = self.sessions.recent_sessions(
            db,
            key.user_id,
            since=now - timedelta(days=settings.RISK_HISTORY_DAYS),
            limit=settings.RISK_HISTORY_LIMIT
        )

        last_geo = None
        last_at = None
        if session_info.geo_location is not None and recent:
            last_login = self.audit.last_login(db, key.user_id)
            if last_login is not None:
                last_geo = _geo_from_metadata(last_login.details)
                last_at = last_login.created_at

        assessment = self.risk_evaluator.evaluate(RiskContext(
            ip_address=session_info.ip_address,
            allowed_ips=list(key.allowed_ips or []),
            now=now,
            user_agent=session_info.user_agent,
            geo_location=session_info.geo_location,
            recent_sessions=recent,
            last_login_geo=last_geo,
            last_login_at=last_at
        ))

        metrics.admin_risk_score.observe(assessment.risk_score)
        for factor in assessment.factors:
            metrics.admin_risk_factors_total.labels(factor=factor).inc()
        return assessment

    def _open_session(
        self,
        db: Session,
        key: AdminKey,
        session_info: SessionInfo,
        risk_score: Optional[int]
    ) -> SessionGrant:
        self.verifier.reset_attempts(db, key)
        session = self.sessions.create(db, key.user_id, session_info.ip_address, session_info.user_agent)
        metrics.admin_sessions_created_total.inc()
        return SessionGrant(token=session.token, expires_at=session.expires_at, risk_score=risk_score)

    @staticmethod
    def _session_metadata(session_info: SessionInfo) -> Dict[str, Any]:
        return {
            "user_agent": session_info.user_agent,
            "geo_location": session_info.geo_location.model_dump() if session_info.geo_location else None,
        }


def _geo_from_metadata(metadata: Optional[Dict[str, Any]]) -> Optional[GeoLocation]:
    """Last known geo-location stored with an ADMIN_LOGIN entry; malformed data is ignored"""
    if not metadata or not metadata.get("geo_location"):
        return None
    try:
        return GeoLocation.model_validate(metadata["geo_location"])
    except ValueError as e:
        logger.warning(f"Ignoring malformed geo-location in audit metadata: {e}")
        return None

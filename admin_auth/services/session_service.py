"""
Admin Session Manager

IP-bound administrator sessions: creation, validation with hijack detection,
throttled activity refresh and invalidation.

Session state machine: CREATED(active) -> [ACTIVITY_REFRESH]* -> INVALIDATED,
with automatic terminal transitions on expiry and on IP mismatch. Only the
IP mismatch emits a security audit event.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from admin_auth import metrics
from admin_auth.core.config import settings
from admin_auth.core.errors import ErrorCode, SystemAdminError
from admin_auth.models import AdminSession, AuditAction
from admin_auth.services.audit_service import AuditService
from admin_auth.utils.security import generate_session_token, mask_ip, utcnow

logger = logging.getLogger(__name__)


class AdminSessionManager:
    """Service for admin session lifecycle"""

    def __init__(
        self,
        session_factory: sessionmaker,
        audit: AuditService,
        clock: Callable[[], datetime] = utcnow,
        duration_minutes: Optional[int] = None,
        activity_refresh_seconds: Optional[int] = None
    ):
        self.session_factory = session_factory
        self.audit = audit
        self.clock = clock
        self.duration = timedelta(
            minutes=settings.ADMIN_SESSION_DURATION_MINUTES if duration_minutes is None else duration_minutes
        )
        self.activity_refresh = timedelta(
            seconds=settings.ADMIN_ACTIVITY_REFRESH_SECONDS
            if activity_refresh_seconds is None else activity_refresh_seconds
        )

    def create(self, db: Session, user_id: str, ip_address: str, user_agent: Optional[str] = None) -> AdminSession:
        """
        Create a session inside the caller's transaction

        Args:
            db: Caller's session; the caller commits together with the attempt reset
            user_id: Administrator the session belongs to
            ip_address: Binding IP
            user_agent: Optional user agent

        Returns:
            Flushed AdminSession
        """
        now = self.clock()
        session = AdminSession(
            user_id=user_id,
            token=generate_session_token(),
            ip_address=ip_address,
            user_agent=user_agent,
            is_active=True,
            created_at=now,
            expires_at=now + self.duration,
            last_activity=now
        )
        db.add(session)
        db.flush()
        return session

    def authenticate_token(self, token: str, ip_address: str) -> Optional[AdminSession]:
        """
        Validate a token and return its session

        Checks, in order: exists and active; bound IP (a mismatch deactivates
        the session and records SUSPICIOUS_ACCESS); expiry (deactivates). A
        valid session has last_activity refreshed when older than the refresh
        threshold.

        Returns:
            The active AdminSession, or None
        """
        if not token:
            return None

        suspicious = None
        try:
            with self.session_factory() as db:
                session = db.scalars(select(AdminSession).where(AdminSession.token == token)).first()
                if session is None or not session.is_active:
                    metrics.admin_session_validations_total.labels(result="not_found").inc()
                    return None

                now = self.clock()
                if session.ip_address != ip_address:
                    session.is_active = False
                    db.commit()
                    suspicious = session
                elif session.expires_at <= now:
                    session.is_active = False
                    db.commit()
                    metrics.admin_session_validations_total.labels(result="expired").inc()
                    logger.info(f"Admin session {session.session_id} expired")
                    return None
                else:
                    if now - session.last_activity > self.activity_refresh:
                        session.last_activity = now
                        db.commit()
                    metrics.admin_session_validations_total.labels(result="valid").inc()
                    return session
        except SQLAlchemyError as e:
            logger.error(f"Admin session validation failed: {e}")
            return None

        metrics.admin_session_validations_total.labels(result="ip_mismatch").inc()
        logger.warning(
            f"IP address mismatch for admin session {suspicious.session_id}: "
            f"expected {mask_ip(suspicious.ip_address)}, got {mask_ip(ip_address)}"
        )
        self.audit.record(
            suspicious.user_id,
            AuditAction.SUSPICIOUS_ACCESS,
            ip_address=ip_address,
            metadata={
                "original_ip": suspicious.ip_address,
                "session_id": suspicious.session_id,
                "reason": "ip_mismatch",
            }
        )
        return None

    def validate(self, token: str, ip_address: str) -> bool:
        return self.authenticate_token(token, ip_address) is not None

    def invalidate(self, token: str) -> bool:
        """
        Deactivate a session; invalidating an unknown or inactive token is a no-op

        Returns:
            True if an active session was deactivated

        Raises:
            SystemAdminError: INVALID_SESSION if the store cannot be updated
        """
        try:
            with self.session_factory() as db:
                session = db.scalars(select(AdminSession).where(AdminSession.token == token)).first()
                if session is None or not session.is_active:
                    return False
                session.is_active = False
                db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Admin session invalidation failed: {e}")
            raise SystemAdminError("Failed to invalidate the session", ErrorCode.INVALID_SESSION, 500)

        self.audit.record(
            session.user_id,
            AuditAction.ADMIN_LOGOUT,
            ip_address=session.ip_address,
            metadata={"session_id": session.session_id, "user_agent": session.user_agent}
        )
        logger.info(f"Admin session {session.session_id} invalidated")
        return True

    def recent_sessions(self, db: Session, user_id: str, since: datetime, limit: int = 20) -> List[AdminSession]:
        """Sessions created since a point in time, newest first"""
        stmt = (
            select(AdminSession)
            .where(AdminSession.user_id == user_id, AdminSession.created_at >= since)
            .order_by(AdminSession.created_at.desc())
            .limit(limit)
        )
        return list(db.scalars(stmt))

    def deactivate_expired(self) -> int:
        """Bulk-deactivate sessions past their expiry; returns the number affected"""
        with self.session_factory() as db:
            result = db.execute(
                update(AdminSession)
                .where(AdminSession.is_active.is_(True), AdminSession.expires_at <= self.clock())
                .values(is_active=False)
                .execution_options(synchronize_session=False)
            )
            db.commit()
        if result.rowcount:
            logger.info(f"Deactivated {result.rowcount} expired admin sessions")
        return result.rowcount

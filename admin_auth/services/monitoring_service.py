"""
System Monitoring Service

Admin session statistics, request/error rates and anomaly detection over
sessions and the audit trail.
"""

import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from prometheus_client import Histogram
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from admin_auth import metrics
from admin_auth.core.errors import ErrorCode, SystemAdminError
from admin_auth.models import AdminSession, AuditAction, AuditLog
from admin_auth.schemas.monitoring import Anomaly, AnomalyReport, PerformanceMetrics, SessionStats
from admin_auth.services.audit_service import AuditService
from admin_auth.utils.security import utcnow

logger = logging.getLogger(__name__)

PERIODS: Dict[str, timedelta] = {
    "day": timedelta(days=1),
    "week": timedelta(days=7),
    "month": timedelta(days=30),
}

LOGIN_FAILURE_THRESHOLD = 5
LOGIN_FAILURE_HIGH_THRESHOLD = 10
ACTIVE_SESSION_THRESHOLD = 10

ERROR_ACTIONS = (AuditAction.ADMIN_LOGIN_FAILED.value, AuditAction.SUSPICIOUS_ACCESS.value)


def extract_device(user_agent: str) -> str:
    """Rough platform guess from a user agent"""
    if "iPhone" in user_agent or "iPad" in user_agent:
        return "iOS"
    if "Android" in user_agent:
        return "Android"
    if "Windows" in user_agent:
        return "Windows"
    if "Mac" in user_agent:
        return "Mac"
    if "Linux" in user_agent:
        return "Linux"
    return "Other"


def extract_browser(user_agent: str) -> str:
    """Rough browser guess from a user agent"""
    if "Chrome" in user_agent and "Edg" not in user_agent:
        return "Chrome"
    if "Firefox" in user_agent:
        return "Firefox"
    if "Safari" in user_agent and "Chrome" not in user_agent:
        return "Safari"
    if "Edg" in user_agent:
        return "Edge"
    if "MSIE" in user_agent or "Trident" in user_agent:
        return "Internet Explorer"
    return "Other"


class SystemMonitoringService:
    """Service for admin session monitoring"""

    def __init__(
        self,
        session_factory: sessionmaker,
        audit: AuditService,
        clock: Callable[[], datetime] = utcnow,
        duration_histogram: Optional[Histogram] = None
    ):
        self.session_factory = session_factory
        self.audit = audit
        self.clock = clock
        self.duration_histogram = (
            metrics.http_request_duration_seconds if duration_histogram is None else duration_histogram
        )

    def get_session_stats(self, period: str = "day") -> SessionStats:
        """
        Session statistics for the trailing period

        Args:
            period: 'day', 'week' or 'month'

        Returns:
            SessionStats with totals and device/browser histograms of sessions
            created in the period

        Raises:
            SystemAdminError: VALIDATION_ERROR for unknown periods, MONITORING_ERROR on store failure
        """
        if period not in PERIODS:
            raise SystemAdminError(f"Unknown period: {period}", ErrorCode.VALIDATION_ERROR, 400)

        now = self.clock()
        period_start = now - PERIODS[period]
        try:
            with self.session_factory() as db:
                total = self._count(db)
                active = self._count(db, AdminSession.is_active.is_(True), AdminSession.expires_at > now)
                recent = self._count(db, AdminSession.last_activity > period_start)
                agents = db.scalars(
                    select(AdminSession.user_agent).where(AdminSession.created_at > period_start)
                ).all()
        except SQLAlchemyError as e:
            logger.error(f"Error getting session stats: {e}")
            raise SystemAdminError("Failed to retrieve session statistics", ErrorCode.MONITORING_ERROR, 500)

        agents = [ua for ua in agents if ua]
        return SessionStats(
            period=period,
            total_sessions=total,
            active_sessions=active,
            recent_activities=recent,
            by_device=dict(Counter(extract_device(ua) for ua in agents)),
            by_browser=dict(Counter(extract_browser(ua) for ua in agents))
        )

    def get_performance_metrics(self) -> PerformanceMetrics:
        """
        Request and error rates from the last 24 hours of audit entries

        requestRate counts audited requests, errorRate is the share of them
        that were failed logins or suspicious accesses (percent). The average
        response time comes from the HTTP duration histogram and is None until
        a request has been observed.

        Raises:
            SystemAdminError: MONITORING_ERROR on store failure
        """
        now = self.clock()
        day_ago = now - timedelta(hours=24)
        try:
            with self.session_factory() as db:
                total = db.scalar(
                    select(func.count()).select_from(AuditLog).where(AuditLog.created_at > day_ago)
                ) or 0
                errors = db.scalar(
                    select(func.count())
                    .select_from(AuditLog)
                    .where(AuditLog.created_at > day_ago, AuditLog.action.in_(ERROR_ACTIONS))
                ) or 0
        except SQLAlchemyError as e:
            logger.error(f"Error getting performance metrics: {e}")
            raise SystemAdminError("Failed to retrieve performance metrics", ErrorCode.MONITORING_ERROR, 500)

        return PerformanceMetrics(
            avg_response_time=self._avg_response_time_ms(),
            request_rate=total,
            error_rate=round(errors / total * 100, 2) if total else 0.0,
            timestamp=now
        )

    def _avg_response_time_ms(self) -> Optional[float]:
        duration_sum = 0.0
        duration_count = 0.0
        for metric in self.duration_histogram.collect():
            for sample in metric.samples:
                if sample.name.endswith("_sum"):
                    duration_sum += sample.value
                elif sample.name.endswith("_count"):
                    duration_count += sample.value
        if not duration_count:
            return None
        return round(duration_sum / duration_count * 1000, 2)

    def detect_anomalies(self) -> AnomalyReport:
        """
        Flag suspicious patterns over the last 24 hours

        - login_failures: more than 5 failed logins (high above 10)
        - suspicious_access: any SUSPICIOUS_ACCESS entry (high)
        - high_session_count: more than 10 active sessions (medium)

        Raises:
            SystemAdminError: MONITORING_ERROR on store failure
        """
        now = self.clock()
        day_ago = now - timedelta(hours=24)
        anomalies: List[Anomaly] = []

        try:
            with self.session_factory() as db:
                failed_logins = self.audit.count_since(db, AuditAction.ADMIN_LOGIN_FAILED, day_ago)
                suspicious = self.audit.count_since(db, AuditAction.SUSPICIOUS_ACCESS, day_ago)
                active = self._count(db, AdminSession.is_active.is_(True), AdminSession.expires_at > now)
        except SQLAlchemyError as e:
            logger.error(f"Error detecting anomalies: {e}")
            raise SystemAdminError("Failed to run anomaly detection", ErrorCode.MONITORING_ERROR, 500)

        if failed_logins > LOGIN_FAILURE_THRESHOLD:
            anomalies.append(Anomaly(
                type="login_failures",
                severity="high" if failed_logins > LOGIN_FAILURE_HIGH_THRESHOLD else "medium",
                message=f"{failed_logins} failed admin logins in the last 24 hours",
                timestamp=now,
                details={"count": failed_logins}
            ))

        if suspicious > 0:
            anomalies.append(Anomaly(
                type="suspicious_access",
                severity="high",
                message=f"{suspicious} suspicious admin accesses in the last 24 hours",
                timestamp=now,
                details={"count": suspicious}
            ))

        if active > ACTIVE_SESSION_THRESHOLD:
            anomalies.append(Anomaly(
                type="high_session_count",
                severity="medium",
                message=f"{active} active admin sessions",
                timestamp=now,
                details={"count": active}
            ))

        if anomalies:
            logger.warning(f"Detected admin anomalies: {[a.type for a in anomalies]}")
        return AnomalyReport(anomalies=anomalies)

    @staticmethod
    def _count(db: Session, *conditions) -> int:
        stmt = select(func.count()).select_from(AdminSession)
        if conditions:
            stmt = stmt.where(*conditions)
        return db.scalar(stmt) or 0

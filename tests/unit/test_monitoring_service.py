"""
Unit tests for session monitoring and anomaly detection
"""

from datetime import timedelta
from unittest.mock import Mock

import pytest
from prometheus_client import CollectorRegistry, Histogram
from sqlalchemy.exc import OperationalError

from admin_auth.core.errors import ErrorCode, SystemAdminError
from admin_auth.models import AuditAction
from admin_auth.services.monitoring_service import SystemMonitoringService, extract_browser, extract_device
from tests.support import CHROME_UA, FIREFOX_UA


@pytest.fixture
def monitoring(services):
    return services.monitoring


class TestSessionStats:

    def test_day_stats(self, monitoring, add_session):
        add_session(user_agent=CHROME_UA, age=timedelta(hours=1), active=True)
        add_session(user_agent=FIREFOX_UA, age=timedelta(hours=2))
        add_session(user_agent=CHROME_UA, age=timedelta(days=3))

        stats = monitoring.get_session_stats("day")

        assert stats.total_sessions == 3
        assert stats.active_sessions == 1
        assert stats.recent_activities == 2
        assert stats.by_browser == {"Chrome": 1, "Firefox": 1}
        assert stats.by_device == {"Linux": 2}

    def test_week_includes_older_sessions(self, monitoring, add_session):
        add_session(age=timedelta(days=3))
        assert monitoring.get_session_stats("week").recent_activities == 1

    def test_unknown_period(self, monitoring):
        with pytest.raises(SystemAdminError) as exc_info:
            monitoring.get_session_stats("year")
        assert exc_info.value.code == ErrorCode.VALIDATION_ERROR


class TestAnomalies:

    def test_quiet_period(self, monitoring):
        assert monitoring.detect_anomalies().anomalies == []

    def test_login_failures(self, monitoring, add_audit):
        for _ in range(6):
            add_audit(AuditAction.ADMIN_LOGIN_FAILED, age=timedelta(hours=1))

        anomalies = monitoring.detect_anomalies().anomalies

        assert [a.type for a in anomalies] == ["login_failures"]
        assert anomalies[0].severity == "medium"
        assert anomalies[0].details == {"count": 6}

    def test_many_login_failures_are_high(self, monitoring, add_audit):
        for _ in range(11):
            add_audit(AuditAction.ADMIN_LOGIN_FAILED, age=timedelta(hours=1))

        assert monitoring.detect_anomalies().anomalies[0].severity == "high"

    def test_old_failures_are_ignored(self, monitoring, add_audit):
        for _ in range(6):
            add_audit(AuditAction.ADMIN_LOGIN_FAILED, age=timedelta(hours=25))

        assert monitoring.detect_anomalies().anomalies == []

    def test_suspicious_access(self, monitoring, add_audit):
        add_audit(AuditAction.SUSPICIOUS_ACCESS, age=timedelta(minutes=5))

        anomalies = monitoring.detect_anomalies().anomalies
        assert anomalies[0].type == "suspicious_access"
        assert anomalies[0].severity == "high"

    def test_high_session_count(self, monitoring, add_session):
        for _ in range(11):
            add_session(age=timedelta(minutes=30), active=True)

        anomalies = monitoring.detect_anomalies().anomalies
        assert [a.type for a in anomalies] == ["high_session_count"]


@pytest.fixture
def duration_histogram():
    return Histogram(
        "test_http_request_duration_seconds",
        "HTTP request duration in seconds",
        ["method", "endpoint"],
        registry=CollectorRegistry()
    )


@pytest.fixture
def perf_monitoring(session_factory, services, clock, duration_histogram):
    return SystemMonitoringService(
        session_factory, services.audit, clock=clock, duration_histogram=duration_histogram
    )


class TestPerformanceMetrics:

    def test_no_traffic(self, perf_monitoring, clock):
        result = perf_monitoring.get_performance_metrics()

        assert result.request_rate == 0
        assert result.error_rate == 0.0
        assert result.avg_response_time is None
        assert result.timestamp == clock()

    def test_rates_from_last_day(self, perf_monitoring, add_audit):
        for _ in range(3):
            add_audit(AuditAction.ADMIN_LOGIN, age=timedelta(hours=2))
        add_audit(AuditAction.ADMIN_LOGIN_FAILED, age=timedelta(hours=1))
        add_audit(AuditAction.ADMIN_LOGIN_FAILED, age=timedelta(hours=30))

        result = perf_monitoring.get_performance_metrics()

        assert result.request_rate == 4
        assert result.error_rate == 25.0

    def test_suspicious_access_counts_as_error(self, perf_monitoring, add_audit):
        add_audit(AuditAction.SUSPICIOUS_ACCESS)
        add_audit(AuditAction.ADMIN_LOGOUT)

        assert perf_monitoring.get_performance_metrics().error_rate == 50.0

    def test_avg_response_time_from_histogram(self, perf_monitoring, duration_histogram):
        duration_histogram.labels(method="GET", endpoint="/health").observe(0.1)
        duration_histogram.labels(method="POST", endpoint="/login").observe(0.3)

        assert perf_monitoring.get_performance_metrics().avg_response_time == 200.0

    def test_store_failure(self, services, clock, duration_histogram):
        failing_factory = Mock(side_effect=OperationalError("SELECT", {}, Exception("down")))
        monitoring = SystemMonitoringService(
            failing_factory, services.audit, clock=clock, duration_histogram=duration_histogram
        )

        with pytest.raises(SystemAdminError) as exc_info:
            monitoring.get_performance_metrics()
        assert exc_info.value.code == ErrorCode.MONITORING_ERROR
        assert exc_info.value.status_code == 500


def test_user_agent_extraction():
    assert extract_device("Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X)") == "iOS"
    assert extract_device("Mozilla/5.0 (Windows NT 10.0; Win64; x64)") == "Windows"
    assert extract_browser("Mozilla/5.0 (Windows NT 10.0) Chrome/120.0 Safari/537.36 Edg/120.0") == "Edge"
    assert extract_browser("Mozilla/5.0 (Macintosh) Version/17.0 Safari/605.1.15") == "Safari"
    assert extract_browser("curl/8.4.0") == "Other"

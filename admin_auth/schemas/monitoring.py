"""
Pydantic schemas for session monitoring and anomaly detection
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from admin_auth.schemas.common import CamelModel


class SessionStats(CamelModel):
    """Admin session statistics for a period"""
    period: Literal["day", "week", "month"]
    total_sessions: int
    active_sessions: int
    recent_activities: int
    by_device: Dict[str, int] = {}
    by_browser: Dict[str, int] = {}


class Anomaly(CamelModel):
    type: str  # login_failures, suspicious_access, high_session_count
    severity: Literal["low", "medium", "high"]
    message: str
    timestamp: datetime
    details: Optional[Dict[str, Any]] = None


class AnomalyReport(CamelModel):
    anomalies: List[Anomaly]


class PerformanceMetrics(CamelModel):
    """Request and error rates over the last 24 hours of the audit trail"""
    avg_response_time: Optional[float] = None  # ms, since process start
    request_rate: int  # audited requests per 24 hours
    error_rate: float  # percent of audited requests that failed
    timestamp: datetime

"""
Monitoring endpoints
"""

from fastapi import APIRouter, Depends, Query

from admin_auth.api.dependencies import get_container, require_admin_session
from admin_auth.models import AdminSession
from admin_auth.schemas.monitoring import AnomalyReport, PerformanceMetrics, SessionStats
from admin_auth.services.container import ServiceContainer


router = APIRouter()


@router.get("/sessions", response_model=SessionStats, response_model_by_alias=True)
def get_session_stats(
    period: str = Query(default="day", description="day, week or month"),
    admin: AdminSession = Depends(require_admin_session),
    container: ServiceContainer = Depends(get_container)
):
    """
    Admin session statistics for the trailing period

    **Returns:**
    - totalSessions, activeSessions, recentActivities
    - byDevice, byBrowser: Histograms of sessions created in the period
    """
    return container.monitoring.get_session_stats(period)


@router.get("/alerts", response_model=AnomalyReport, response_model_by_alias=True)
def get_anomalies(
    admin: AdminSession = Depends(require_admin_session),
    container: ServiceContainer = Depends(get_container)
):
    """Anomalies detected over the last 24 hours"""
    return container.monitoring.detect_anomalies()


@router.get("/performance", response_model=PerformanceMetrics, response_model_by_alias=True)
def get_performance_metrics(
    admin: AdminSession = Depends(require_admin_session),
    container: ServiceContainer = Depends(get_container)
):
    """
    Request and error rates over the last 24 hours

    **Returns:**
    - avgResponseTime: Mean HTTP response time in ms (null before any request)
    - requestRate: Audited requests in the last 24 hours
    - errorRate: Percentage of them that failed
    """
    return container.monitoring.get_performance_metrics()

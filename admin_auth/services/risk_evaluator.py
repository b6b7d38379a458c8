"""
Risk Evaluator

Pure, additive risk scoring for an admin authentication attempt. All history
is gathered by the caller and passed in as a RiskContext, so scoring never
touches the store.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional, Sequence
from zoneinfo import ZoneInfo

from admin_auth.core.config import settings
from admin_auth.schemas.common import GeoLocation
from admin_auth.services.ip_policy import ip_matches_list, risk_level

EARTH_RADIUS_KM = 6371.0

UNKNOWN_IP_POINTS = 30
NON_BUSINESS_HOURS_POINTS = 20
NEW_USER_AGENT_POINTS = 15
HIGH_FREQUENCY_POINTS = 20
IMPOSSIBLE_TRAVEL_POINTS = 40


@dataclass
class RiskContext:
    """Everything the evaluator looks at for one attempt"""
    ip_address: str
    allowed_ips: List[str]
    now: datetime  # naive UTC
    user_agent: Optional[str] = None
    geo_location: Optional[GeoLocation] = None
    # Objects with created_at and user_agent, newest first (AdminSession rows)
    recent_sessions: Sequence[Any] = field(default_factory=list)
    last_login_geo: Optional[GeoLocation] = None
    last_login_at: Optional[datetime] = None


@dataclass
class RiskAssessment:
    risk_score: int
    factors: List[str]
    requires_additional_auth: bool
    allow_access: bool

    @property
    def display_score(self) -> int:
        return max(0, min(100, self.risk_score))

    @property
    def risk_level(self) -> str:
        return risk_level(self.risk_score)


def browser_family(user_agent: str) -> str:
    """Reduce a user agent to its browser family, or its first 20 characters"""
    if "Chrome" in user_agent:
        return "Chrome"
    if "Firefox" in user_agent:
        return "Firefox"
    if "Safari" in user_agent:
        return "Safari"
    if "Edge" in user_agent:
        return "Edge"
    return user_agent[:20]


def is_similar_user_agent(stored: str, current: str) -> bool:
    return browser_family(stored) == browser_family(current)


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in kilometres"""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


class RiskEvaluator:
    """Additive risk scoring with step-up and deny thresholds"""

    def __init__(
        self,
        business_hours_start: Optional[int] = None,
        business_hours_end: Optional[int] = None,
        business_timezone: Optional[str] = None,
        max_travel_speed_kmh: Optional[float] = None,
        step_up_threshold: Optional[int] = None,
        deny_threshold: Optional[int] = None,
        high_frequency_count: Optional[int] = None
    ):
        self.business_hours_start = _default(business_hours_start, settings.BUSINESS_HOURS_START)
        self.business_hours_end = _default(business_hours_end, settings.BUSINESS_HOURS_END)
        self.business_timezone = ZoneInfo(business_timezone or settings.BUSINESS_TIMEZONE)
        self.max_travel_speed_kmh = _default(max_travel_speed_kmh, settings.MAX_TRAVEL_SPEED_KMH)
        self.step_up_threshold = _default(step_up_threshold, settings.RISK_STEP_UP_THRESHOLD)
        self.deny_threshold = _default(deny_threshold, settings.RISK_DENY_THRESHOLD)
        self.high_frequency_count = _default(high_frequency_count, settings.HIGH_FREQUENCY_SESSION_COUNT)

    def evaluate(self, ctx: RiskContext) -> RiskAssessment:
        """
        Score an attempt

        Factors: unknown_ip (+30), non_business_hours (+20), new_user_agent (+15),
        high_frequency_access (+20), impossible_travel (+40). Step-up is required
        above the step-up threshold; access is allowed below the deny threshold.
        """
        score = 0
        factors: List[str] = []

        if not ip_matches_list(ctx.ip_address, ctx.allowed_ips):
            score += UNKNOWN_IP_POINTS
            factors.append("unknown_ip")

        if not self.is_business_hours(ctx.now):
            score += NON_BUSINESS_HOURS_POINTS
            factors.append("non_business_hours")

        if ctx.user_agent and not any(
            s.user_agent and is_similar_user_agent(s.user_agent, ctx.user_agent)
            for s in ctx.recent_sessions
        ):
            score += NEW_USER_AGENT_POINTS
            factors.append("new_user_agent")

        day_ago = ctx.now - timedelta(hours=24)
        if sum(1 for s in ctx.recent_sessions if s.created_at > day_ago) > self.high_frequency_count:
            score += HIGH_FREQUENCY_POINTS
            factors.append("high_frequency_access")

        if ctx.geo_location is not None and ctx.recent_sessions and self.is_impossible_travel(ctx):
            score += IMPOSSIBLE_TRAVEL_POINTS
            factors.append("impossible_travel")

        return RiskAssessment(
            risk_score=score,
            factors=factors,
            requires_additional_auth=score > self.step_up_threshold,
            allow_access=score < self.deny_threshold
        )

    def is_business_hours(self, now: datetime) -> bool:
        """Inclusive hour window in the configured business timezone"""
        local = now.replace(tzinfo=timezone.utc).astimezone(self.business_timezone)
        return self.business_hours_start <= local.hour <= self.business_hours_end

    def is_impossible_travel(self, ctx: RiskContext) -> bool:
        if ctx.last_login_geo is None or ctx.last_login_at is None or ctx.geo_location is None:
            return False

        distance = haversine_km(
            ctx.last_login_geo.lat, ctx.last_login_geo.lng,
            ctx.geo_location.lat, ctx.geo_location.lng
        )
        hours = (ctx.now - ctx.last_login_at).total_seconds() / 3600
        if hours <= 0:
            return distance > 0
        return distance / hours > self.max_travel_speed_kmh


def _default(value, fallback):
    return fallback if value is None else value

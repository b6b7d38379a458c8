"""
Pydantic schemas for IP allow-list management
"""

from datetime import datetime
from typing import List, Optional
from pydantic import Field

from admin_auth.schemas.common import CamelModel, GeoLocation


class IpEntryRequest(CamelModel):
    """Add or remove an allow-list entry"""
    ip: str = Field(..., min_length=1, max_length=64)
    label: Optional[str] = Field(None, max_length=255)


class IpRiskRequest(CamelModel):
    """Ad hoc IP risk evaluation request"""
    ip: str = Field(..., min_length=1, max_length=64)
    geo_location: Optional[GeoLocation] = None


class AllowedIpsResponse(CamelModel):
    allowed_ips: List[str]
    count: int
    timestamp: datetime


class IpChangeResponse(CamelModel):
    success: bool
    message: str
    ip: str
    label: Optional[str] = None
    timestamp: datetime


class IpRiskResponse(CamelModel):
    ip: str
    risk_score: int
    risk_level: str  # low, medium, high
    factors: List[str]
    is_allowed: bool
    timestamp: datetime

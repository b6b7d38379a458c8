"""
Shared pydantic schemas: request context and error bodies
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialising to camelCase while accepting snake_case too"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GeoLocation(CamelModel):
    """Caller geo-location as reported by the edge"""
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    country: Optional[str] = Field(None, max_length=2)
    city: Optional[str] = None
    accuracy: Optional[float] = None  # metres


class SessionInfo(CamelModel):
    """Request context attached to every authentication call"""
    ip_address: str
    user_agent: Optional[str] = None
    geo_location: Optional[GeoLocation] = None


class ErrorResponse(BaseModel):
    """Error body returned for every failure"""
    error: str
    code: str


class SuccessResponse(BaseModel):
    success: bool = True

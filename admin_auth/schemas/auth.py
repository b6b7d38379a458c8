"""
Pydantic schemas for system administrator authentication endpoints
"""

from datetime import datetime
from typing import List, Optional, Union
from pydantic import Field, field_validator

from admin_auth.schemas.common import CamelModel


# Request schemas

class AdminLoginRequest(CamelModel):
    """Admin key login request"""
    key: str = Field(..., min_length=1)
    mfa_code: Optional[str] = None


class AdminMfaVerifyRequest(CamelModel):
    """MFA step-up completion request"""
    temp_token: str = Field(..., min_length=1)
    mfa_code: str = Field(..., min_length=1)


class AdminValidateRequest(CamelModel):
    """Session validation request"""
    token: str = Field(..., min_length=1)
    ip_address: str = Field(..., min_length=1)


class AdminLogoutRequest(CamelModel):
    """Logout request; the token may come from the x-admin-token header instead"""
    token: Optional[str] = None

    @field_validator("token")
    @classmethod
    def blank_is_missing(cls, v):
        return v or None


# Results / response schemas

class SessionGrant(CamelModel):
    """Successful authentication: an active session"""
    token: str
    expires_at: datetime
    risk_score: Optional[int] = None


class MfaChallenge(CamelModel):
    """Authentication that needs a second factor before a session is granted"""
    requires_mfa: bool = True
    temp_token: str
    risk_score: int
    risk_factors: List[str] = []


AuthResult = Union[SessionGrant, MfaChallenge]


class ValidateResponse(CamelModel):
    valid: bool = True

"""
System administrator authentication endpoints
"""

import logging
from typing import Optional, Union

from fastapi import APIRouter, Depends, Header, Request

from admin_auth.api.dependencies import get_auth_service, get_client_ip, get_session_info
from admin_auth.core.errors import ErrorCode, SystemAdminError, validation_error
from admin_auth.schemas.auth import (
    AdminLoginRequest,
    AdminLogoutRequest,
    AdminMfaVerifyRequest,
    AdminValidateRequest,
    MfaChallenge,
    SessionGrant,
    ValidateResponse,
)
from admin_auth.schemas.common import SessionInfo, SuccessResponse
from admin_auth.services.auth_service import AdminAuthService
from admin_auth.utils.security import mask_ip

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/login",
    response_model=Union[SessionGrant, MfaChallenge],
    response_model_by_alias=True,
    response_model_exclude_none=True
)
def login(
    request_data: AdminLoginRequest,
    session_info: SessionInfo = Depends(get_session_info),
    auth_service: AdminAuthService = Depends(get_auth_service)
):
    """
    Authenticate with the system administrator key

    The caller IP comes from X-Forwarded-For / X-Real-IP, the user agent from
    User-Agent, and an optional geo-location from the X-Geo-Location JSON header.

    **Request Body:**
    - key: Admin key
    - mfaCode: Optional inline 6-digit code, used when the attempt needs step-up

    **Returns:**
    - token, expiresAt, riskScore: session granted
    - requiresMfa, tempToken, riskScore, riskFactors: step-up required, call /verify-mfa

    **Errors:**
    - 401 INVALID_KEY: Wrong key
    - 401 INVALID_MFA: Inline MFA code rejected
    - 403 ACCESS_DENIED: Risk score too high
    - 429 MAX_ATTEMPTS_EXCEEDED: Key locked after repeated failures
    """
    return auth_service.authenticate(request_data.key, session_info, mfa_code=request_data.mfa_code)


@router.post(
    "/verify-mfa",
    response_model=SessionGrant,
    response_model_by_alias=True,
    response_model_exclude_none=True
)
def verify_mfa(
    request_data: AdminMfaVerifyRequest,
    session_info: SessionInfo = Depends(get_session_info),
    auth_service: AdminAuthService = Depends(get_auth_service)
):
    """
    Complete a step-up login with the temp token from /login

    Must be called from the same IP that received the temp token.

    **Errors:**
    - 401 INVALID_TOKEN: Temp token unknown, expired, already used or IP changed
    - 401 INVALID_MFA: Wrong code (the temp token stays valid)
    - 429 MAX_ATTEMPTS_EXCEEDED: Key locked
    """
    return auth_service.verify_mfa_and_complete(request_data.temp_token, request_data.mfa_code, session_info)


@router.post("/validate", response_model=ValidateResponse, response_model_by_alias=True)
def validate(
    request_data: AdminValidateRequest,
    auth_service: AdminAuthService = Depends(get_auth_service)
):
    """Validate a session token for the IP it is presented from"""
    if not auth_service.validate_session(request_data.token, request_data.ip_address):
        raise SystemAdminError("Invalid or expired session", ErrorCode.INVALID_SESSION, 401)
    return ValidateResponse(valid=True)


@router.post("/logout", response_model=SuccessResponse)
def logout(
    request: Request,
    request_data: Optional[AdminLogoutRequest] = None,
    x_admin_token: Optional[str] = Header(default=None),
    auth_service: AdminAuthService = Depends(get_auth_service)
):
    """
    Invalidate a session

    The token is taken from the body, falling back to the X-Admin-Token
    header. Logging out an unknown or already inactive session succeeds.
    """
    token = (request_data.token if request_data else None) or x_admin_token
    if not token:
        raise validation_error("Session token is required")

    auth_service.invalidate_session(token)
    logger.info(f"Admin logout requested from {mask_ip(get_client_ip(request))}")
    return SuccessResponse(success=True)

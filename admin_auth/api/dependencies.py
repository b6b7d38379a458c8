"""
API dependencies for request context and admin session checks
"""

import json
import logging
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, Request
from pydantic import ValidationError

from admin_auth.core.database import SessionLocal
from admin_auth.core.errors import ErrorCode, SystemAdminError
from admin_auth.models import AdminSession
from admin_auth.schemas.common import GeoLocation, SessionInfo
from admin_auth.services.auth_service import AdminAuthService
from admin_auth.services.container import ServiceContainer, build_container
from admin_auth.utils.security import mask_ip

logger = logging.getLogger(__name__)

UNKNOWN_IP = "0.0.0.0"


@lru_cache()
def get_container() -> ServiceContainer:
    """Process-wide service container"""
    return build_container(SessionLocal)


def get_auth_service(container: ServiceContainer = Depends(get_container)) -> AdminAuthService:
    return container.auth


def get_client_ip(request: Request) -> str:
    """
    Resolve the caller IP

    First value of X-Forwarded-For, then X-Real-IP, then 0.0.0.0.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()

    return UNKNOWN_IP


def parse_geo_header(raw: Optional[str]) -> Optional[GeoLocation]:
    """Parse the x-geo-location JSON header; malformed values are ignored"""
    if not raw:
        return None
    try:
        return GeoLocation.model_validate(json.loads(raw))
    except (ValueError, ValidationError) as e:
        logger.warning(f"Ignoring malformed x-geo-location header: {e}")
        return None


def get_session_info(request: Request) -> SessionInfo:
    """Build the authentication context from request headers"""
    return SessionInfo(
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent") or None,
        geo_location=parse_geo_header(request.headers.get("x-geo-location"))
    )


def require_admin_session(
    request: Request,
    x_admin_token: Optional[str] = Header(default=None),
    container: ServiceContainer = Depends(get_container)
) -> AdminSession:
    """
    Require a valid admin session bound to the caller IP

    Raises:
        SystemAdminError: INVALID_SESSION (401) if the token is missing or invalid
    """
    if not x_admin_token:
        raise SystemAdminError(
            "System administrator authentication required",
            ErrorCode.INVALID_SESSION,
            401
        )

    ip_address = get_client_ip(request)
    session = container.sessions.authenticate_token(x_admin_token, ip_address)
    if session is None:
        logger.warning(f"Rejected admin token from {mask_ip(ip_address)}")
        raise SystemAdminError("Invalid or expired session", ErrorCode.INVALID_SESSION, 401)

    return session

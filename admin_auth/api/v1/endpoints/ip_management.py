"""
IP allow-list management endpoints

All routes require an admin session (X-Admin-Token) bound to the caller IP.
"""

from fastapi import APIRouter, Body, Depends

from admin_auth.api.dependencies import get_client_ip, get_container, require_admin_session
from admin_auth.core.errors import validation_error
from admin_auth.models import AdminSession
from admin_auth.schemas.ip_management import (
    AllowedIpsResponse,
    IpChangeResponse,
    IpEntryRequest,
    IpRiskRequest,
    IpRiskResponse,
)
from admin_auth.services.container import ServiceContainer
from admin_auth.services.ip_policy import risk_level
from admin_auth.utils.security import is_valid_ipv4


router = APIRouter()


@router.get("", response_model=AllowedIpsResponse, response_model_by_alias=True)
def list_allowed_ips(
    admin: AdminSession = Depends(require_admin_session),
    container: ServiceContainer = Depends(get_container)
):
    """
    List the admin key's allowed IPs

    **Returns:**
    - allowedIps: Entries (IPv4, CIDR or '*')
    - count: Number of entries
    - timestamp: Server time
    """
    entries = container.ip_policy.list()
    return AllowedIpsResponse(allowed_ips=entries, count=len(entries), timestamp=container.ip_policy.clock())


@router.post("", response_model=IpChangeResponse, response_model_by_alias=True)
def add_allowed_ip(
    request_data: IpEntryRequest,
    admin: AdminSession = Depends(require_admin_session),
    client_ip: str = Depends(get_client_ip),
    container: ServiceContainer = Depends(get_container)
):
    """
    Add an IPv4 address or CIDR block

    **Errors:**
    - 400 VALIDATION_ERROR: Malformed address or CIDR
    - 404 RESOURCE_NOT_FOUND: No admin key provisioned
    """
    ip = request_data.ip.strip()
    container.ip_policy.add(ip, label=request_data.label, actor_ip=client_ip)
    return IpChangeResponse(
        success=True,
        message="IP address added to allowed list",
        ip=ip,
        label=request_data.label,
        timestamp=container.ip_policy.clock()
    )


@router.delete(
    "",
    response_model=IpChangeResponse,
    response_model_by_alias=True,
    response_model_exclude_none=True
)
def remove_allowed_ip(
    request_data: IpEntryRequest = Body(...),
    admin: AdminSession = Depends(require_admin_session),
    client_ip: str = Depends(get_client_ip),
    container: ServiceContainer = Depends(get_container)
):
    """
    Remove an entry from the allow-list

    The caller's own IP and the last remaining entry cannot be removed.
    Removing an entry that is not present reports success=false.
    """
    ip = request_data.ip.strip()
    removed = container.ip_policy.remove(ip, requester_ip=client_ip)
    return IpChangeResponse(
        success=removed,
        message="IP address removed from allowed list" if removed else "IP address not found in allowed list",
        ip=ip,
        timestamp=container.ip_policy.clock()
    )


@router.post("/risk", response_model=IpRiskResponse, response_model_by_alias=True)
def evaluate_ip_risk(
    request_data: IpRiskRequest,
    admin: AdminSession = Depends(require_admin_session),
    container: ServiceContainer = Depends(get_container)
):
    """
    Score an IP address

    **Returns:**
    - riskScore: Additive score (displayed clamped to 0-100)
    - riskLevel: low, medium (>40) or high (>70)
    - factors: Contributing factors
    - isAllowed: Allow-list membership
    """
    ip = request_data.ip.strip()
    if not is_valid_ipv4(ip):
        raise validation_error("Invalid IP address format")

    policy = container.ip_policy
    result = policy.evaluate_risk(ip, request_data.geo_location)
    return IpRiskResponse(
        ip=ip,
        risk_score=max(0, min(100, result.score)),
        risk_level=risk_level(result.score),
        factors=result.factors,
        is_allowed=policy.is_allowed(ip),
        timestamp=policy.clock()
    )

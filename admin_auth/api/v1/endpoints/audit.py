"""
Audit endpoints

Read access to the system audit trail for administrators.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from admin_auth.api.dependencies import get_container, require_admin_session
from admin_auth.models import AdminSession
from admin_auth.schemas.audit import AuditExport, AuditLogEntry, AuditLogFilter, AuditLogPage
from admin_auth.services.container import ServiceContainer


router = APIRouter()


@router.get("/logs", response_model=AuditLogPage, response_model_by_alias=True)
def get_audit_logs(
    user_id: Optional[str] = Query(default=None, alias="userId", description="Filter by administrator"),
    action: Optional[str] = Query(default=None, description="Filter by action (e.g. 'ADMIN_LOGIN')"),
    resource: Optional[str] = Query(default=None, description="Filter by resource (e.g. 'IP_MANAGEMENT')"),
    ip_address: Optional[str] = Query(default=None, alias="ipAddress", description="Filter by originating IP"),
    from_date: Optional[datetime] = Query(
        default=None,
        alias="fromDate",
        description="Entries at or after this time (ISO 8601)"
    ),
    to_date: Optional[datetime] = Query(
        default=None,
        alias="toDate",
        description="Entries at or before this time (ISO 8601)"
    ),
    limit: int = Query(default=20, ge=1, le=1000, description="Page size (1-1000)"),
    offset: int = Query(default=0, ge=0, description="Entries to skip"),
    admin: AdminSession = Depends(require_admin_session),
    container: ServiceContainer = Depends(get_container)
):
    """
    Get a page of audit log entries, newest first

    **Returns:**
    - logs: Entries on this page
    - total: Total matching entries
    - page, pageSize, totalPages: Pagination (page is 1-based)

    **Actions:**
    - ADMIN_LOGIN, ADMIN_MFA_LOGIN, ADMIN_LOGOUT
    - ADMIN_LOGIN_FAILED, ADMIN_MFA_REQUIRED, SUSPICIOUS_ACCESS
    - IP_ALLOW_ADD, IP_ALLOW_REMOVE, ADMIN_KEY_ROTATED
    """
    filters = AuditLogFilter(
        user_id=user_id,
        action=action,
        resource=resource,
        ip_address=ip_address,
        from_date=from_date,
        to_date=to_date,
        limit=limit,
        offset=offset
    )
    return container.audit.get_audit_logs(filters)


@router.get("/access", response_model=List[AuditLogEntry], response_model_by_alias=True)
def get_access_logs(
    user_id: Optional[str] = Query(default=None, alias="userId"),
    limit: int = Query(default=20, ge=1, le=1000),
    admin: AdminSession = Depends(require_admin_session),
    container: ServiceContainer = Depends(get_container)
):
    """Recent login, MFA login and logout entries"""
    return container.audit.get_access_logs(user_id=user_id, limit=limit)


@router.get("/export", response_model=AuditExport, response_model_by_alias=True)
def export_audit_logs(
    format: str = Query(default="json", description="Export format: json or csv"),
    user_id: Optional[str] = Query(default=None, alias="userId"),
    action: Optional[str] = Query(default=None),
    resource: Optional[str] = Query(default=None),
    ip_address: Optional[str] = Query(default=None, alias="ipAddress"),
    from_date: Optional[datetime] = Query(default=None, alias="fromDate"),
    to_date: Optional[datetime] = Query(default=None, alias="toDate"),
    admin: AdminSession = Depends(require_admin_session),
    container: ServiceContainer = Depends(get_container)
):
    """
    Export matching audit entries

    Pagination does not apply; at most 10000 entries are exported. With
    format=csv, `data` carries the CSV text.
    """
    filters = AuditLogFilter(
        user_id=user_id,
        action=action,
        resource=resource,
        ip_address=ip_address,
        from_date=from_date,
        to_date=to_date
    )
    return container.audit.export_audit_data(filters, export_format=format)

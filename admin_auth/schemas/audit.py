"""
Pydantic schemas for system audit log queries and exports
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import ConfigDict, Field

from admin_auth.schemas.common import CamelModel


class AuditLogFilter(CamelModel):
    """Filters shared by paginated queries and exports"""
    user_id: Optional[str] = None
    action: Optional[str] = None
    resource: Optional[str] = None
    ip_address: Optional[str] = None
    from_date: Optional[datetime] = None
    to_date: Optional[datetime] = None
    limit: int = Field(default=20, ge=1, le=1000)
    offset: int = Field(default=0, ge=0)


class AuditLogEntry(CamelModel):
    """Single audit log entry"""
    log_id: int
    user_id: Optional[str] = None
    action: str
    resource: Optional[str] = None
    ip_address: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = Field(
        default=None,
        validation_alias="details",
        serialization_alias="metadata",
    )
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AuditLogPage(CamelModel):
    """Paginated audit log query result"""
    logs: List[AuditLogEntry]
    total: int
    page: int
    page_size: int
    total_pages: int


class AuditExport(CamelModel):
    """Audit export; `data` holds rows (json) or CSV text (csv)"""
    format: str
    count: int
    data: Any
    timestamp: datetime
    filters: Dict[str, Any]

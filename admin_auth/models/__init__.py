"""
Database models
"""

from admin_auth.models.admin_key import AdminKey, DEFAULT_KEY_ID
from admin_auth.models.admin_session import AdminSession
from admin_auth.models.audit_log import AuditLog, AuditAction, ACCESS_ACTIONS

__all__ = [
    "AdminKey",
    "DEFAULT_KEY_ID",
    "AdminSession",
    "AuditLog",
    "AuditAction",
    "ACCESS_ACTIONS",
]

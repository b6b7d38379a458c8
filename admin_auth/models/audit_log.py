"""
System audit log model (append-only)
"""

import enum
from sqlalchemy import Column, BigInteger, Integer, String, DateTime, Index

from admin_auth.core.database import Base, JsonType
from admin_auth.utils.security import utcnow


class AuditAction(str, enum.Enum):
    """Audit action tags written by the admin auth core"""
    ADMIN_LOGIN = "ADMIN_LOGIN"
    ADMIN_LOGIN_FAILED = "ADMIN_LOGIN_FAILED"
    ADMIN_LOGOUT = "ADMIN_LOGOUT"
    ADMIN_MFA_LOGIN = "ADMIN_MFA_LOGIN"
    ADMIN_MFA_REQUIRED = "ADMIN_MFA_REQUIRED"
    SUSPICIOUS_ACCESS = "SUSPICIOUS_ACCESS"
    IP_ALLOW_ADD = "IP_ALLOW_ADD"
    IP_ALLOW_REMOVE = "IP_ALLOW_REMOVE"
    ADMIN_KEY_ROTATED = "ADMIN_KEY_ROTATED"


ACCESS_ACTIONS = (
    AuditAction.ADMIN_LOGIN,
    AuditAction.ADMIN_LOGOUT,
    AuditAction.ADMIN_MFA_LOGIN,
)


class AuditLog(Base):
    """System audit log entry - written once, never updated"""
    __tablename__ = "system_audit_logs"
    __table_args__ = (
        Index('idx_system_audit_logs_action_created', 'action', 'created_at'),
        Index('idx_system_audit_logs_ip_created', 'ip_address', 'created_at'),
        Index('idx_system_audit_logs_user_created', 'user_id', 'created_at'),
    )

    # BigInteger on PostgreSQL; SQLite only autoincrements INTEGER primary keys
    log_id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    user_id = Column(String(255), nullable=True)
    action = Column(String(50), nullable=False)
    resource = Column(String(255), nullable=True)
    ip_address = Column(String(45), nullable=True)
    # 'metadata' is reserved on declarative classes
    details = Column("metadata", JsonType, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(log_id={self.log_id}, action='{self.action}', user_id='{self.user_id}')>"

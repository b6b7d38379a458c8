"""
Admin session model
"""

import uuid
from sqlalchemy import Column, String, Boolean, DateTime, Text, Index

from admin_auth.core.database import Base
from admin_auth.utils.security import utcnow


class AdminSession(Base):
    """IP-bound administrator session"""
    __tablename__ = "admin_sessions"
    __table_args__ = (
        Index('idx_admin_sessions_user_created', 'user_id', 'created_at'),
        Index('idx_admin_sessions_active_expires', 'is_active', 'expires_at'),
    )

    session_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(255), nullable=False)
    token = Column(String(64), nullable=False, unique=True, index=True)
    ip_address = Column(String(45), nullable=False)
    user_agent = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    last_activity = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<AdminSession(session_id='{self.session_id}', user_id='{self.user_id}', active={self.is_active})>"

"""
Admin key model - the system administrator credential
"""

from sqlalchemy import Column, String, DateTime, Integer

from admin_auth.core.database import Base, JsonType
from admin_auth.utils.security import utcnow


DEFAULT_KEY_ID = "system-admin"


class AdminKey(Base):
    """System administrator key with its IP allow-list and lockout counter"""
    __tablename__ = "admin_keys"

    key_id = Column(String(64), primary_key=True, default=DEFAULT_KEY_ID)
    user_id = Column(String(255), nullable=False)
    key_hash = Column(String(255), nullable=False)
    allowed_ips = Column(JsonType, nullable=False, default=list)  # IPs, CIDRs or '*'
    attempts = Column(Integer, nullable=False, default=0)
    last_rotated_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<AdminKey(key_id='{self.key_id}', user_id='{self.user_id}', attempts={self.attempts})>"

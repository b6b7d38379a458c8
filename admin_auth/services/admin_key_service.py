"""
Admin Key Service

Provisioning and rotation of the system administrator key.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from admin_auth.core.errors import ErrorCode, SystemAdminError, validation_error
from admin_auth.models import DEFAULT_KEY_ID, AdminKey, AuditAction
from admin_auth.services.audit_service import AuditService
from admin_auth.services.credential_verifier import CredentialVerifier
from admin_auth.utils.security import generate_admin_key, hash_admin_key, is_valid_ip_or_cidr, utcnow

logger = logging.getLogger(__name__)

DEFAULT_ALLOWED_IPS = ["*"]


@dataclass
class ProvisionedKey:
    """Result of provisioning; the plaintext secret is only ever returned here"""
    key_id: str
    user_id: str
    secret: str
    allowed_ips: List[str]
    rotated: bool


class AdminKeyService:
    """Service for admin key lifecycle"""

    def __init__(
        self,
        session_factory: sessionmaker,
        verifier: CredentialVerifier,
        audit: AuditService,
        clock: Callable[[], datetime] = utcnow
    ):
        self.session_factory = session_factory
        self.verifier = verifier
        self.audit = audit
        self.clock = clock

    def provision(
        self,
        allowed_ips: Optional[List[str]] = None,
        secret: Optional[str] = None,
        user_id: Optional[str] = None,
        key_id: Optional[str] = None
    ) -> ProvisionedKey:
        """
        Create the admin key, or rotate it if one exists

        Rotation replaces the hash and allow-list, resets failed attempts and
        stamps last_rotated_at. The owner identifier is kept.

        Args:
            allowed_ips: Allow-list entries (default ['*'])
            secret: Key to install; a 128-hex-character key is generated when omitted
            user_id: Owner identifier for a new key (generated when omitted)
            key_id: Key to create or rotate (the existing key when omitted)

        Returns:
            ProvisionedKey with the plaintext secret

        Raises:
            SystemAdminError: VALIDATION_ERROR for bad allow-list entries, AUTH_ERROR on store failure
        """
        entries = [ip.strip() for ip in (allowed_ips or DEFAULT_ALLOWED_IPS) if ip and ip.strip()]
        if not entries:
            raise validation_error("At least one allowed IP address is required")
        invalid = [ip for ip in entries if not is_valid_ip_or_cidr(ip)]
        if invalid:
            raise validation_error(f"Invalid IP address or CIDR format: {', '.join(invalid)}")

        secret = secret or generate_admin_key()
        key_hash = hash_admin_key(secret)
        now = self.clock()

        try:
            with self.verifier.key_lock(key_id), self.session_factory() as db:
                key = self.verifier.load(db, key_id)
                rotated = key is not None
                if key is None:
                    key = AdminKey(
                        key_id=key_id or DEFAULT_KEY_ID,
                        user_id=user_id or uuid.uuid4().hex,
                        created_at=now
                    )
                    db.add(key)

                key.key_hash = key_hash
                key.allowed_ips = entries
                key.attempts = 0
                key.last_rotated_at = now
                key.updated_at = now
                db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to provision admin key: {e}")
            raise SystemAdminError("Failed to provision the admin key", ErrorCode.AUTH_ERROR, 500)

        self.audit.record(
            key.user_id,
            AuditAction.ADMIN_KEY_ROTATED,
            metadata={"key_id": key.key_id, "rotated": rotated, "allowed_ips": entries}
        )
        logger.info(f"Admin key {key.key_id} {'rotated' if rotated else 'created'}")
        return ProvisionedKey(
            key_id=key.key_id,
            user_id=key.user_id,
            secret=secret,
            allowed_ips=entries,
            rotated=rotated
        )

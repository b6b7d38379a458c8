"""
Credential Verifier

Admin key lookup, lockout enforcement and bcrypt verification. Methods that
take a Session join the caller's transaction; the caller commits.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.attributes import set_committed_value

from admin_auth.core.config import settings
from admin_auth.core.errors import ErrorCode, SystemAdminError, max_attempts_exceeded
from admin_auth.models import AdminKey
from admin_auth.utils.security import utcnow, verify_admin_key

logger = logging.getLogger(__name__)

SINGLETON_LOCK_NAME = "__singleton__"


class CredentialVerifier:
    """Service for admin key verification and failed-attempt accounting"""

    def __init__(self, session_factory: sessionmaker, max_attempts: Optional[int] = None):
        self.session_factory = session_factory
        self.max_attempts = settings.ADMIN_MAX_ATTEMPTS if max_attempts is None else max_attempts
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def key_lock(self, key_id: Optional[str] = None) -> Iterator[None]:
        """Serialize check-increment-reset sequences for one key within this process"""
        name = key_id or SINGLETON_LOCK_NAME
        with self._locks_guard:
            lock = self._locks.setdefault(name, threading.Lock())
        with lock:
            yield

    def load(self, db: Session, key_id: Optional[str] = None, for_update: bool = True) -> Optional[AdminKey]:
        """
        Load the admin key row, locked FOR UPDATE where the backend supports it

        Args:
            db: Caller's session
            key_id: Specific key; the oldest key is used when omitted

        Returns:
            AdminKey or None
        """
        stmt = select(AdminKey)
        if key_id:
            stmt = stmt.where(AdminKey.key_id == key_id)
        else:
            stmt = stmt.order_by(AdminKey.created_at, AdminKey.key_id)
        if for_update:
            stmt = stmt.with_for_update()
        return db.scalars(stmt.limit(1)).first()

    def is_locked(self, key: AdminKey) -> bool:
        return (key.attempts or 0) >= self.max_attempts

    def ensure_not_locked(self, key: AdminKey) -> None:
        """
        Raises:
            SystemAdminError: MAX_ATTEMPTS_EXCEEDED once the failure budget is spent
        """
        if self.is_locked(key):
            logger.warning(f"Admin key {key.key_id} is locked after {key.attempts} failed attempts")
            raise max_attempts_exceeded()

    def verify_secret(self, key: AdminKey, secret: str) -> bool:
        return verify_admin_key(secret, key.key_hash)

    def record_failure(self, db: Session, key: AdminKey) -> int:
        """
        Atomically increment the failed-attempt counter

        Returns:
            The counter value after the increment
        """
        db.execute(
            update(AdminKey)
            .where(AdminKey.key_id == key.key_id)
            .values(attempts=AdminKey.attempts + 1, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        db.refresh(key, attribute_names=["attempts"])
        logger.info(f"Admin key {key.key_id} failed attempts: {key.attempts}")
        return key.attempts

    def reset_attempts(self, db: Session, key: AdminKey) -> None:
        """Zero the counter inside the caller's transaction (committed with the new session)"""
        if key.attempts:
            db.execute(
                update(AdminKey)
                .where(AdminKey.key_id == key.key_id)
                .values(attempts=0, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            set_committed_value(key, "attempts", 0)

    def reset_lockout(self, key_id: Optional[str] = None) -> bool:
        """
        Out-of-band reset of a locked key

        Returns:
            True if a key was found and reset

        Raises:
            SystemAdminError: AUTH_ERROR if the store cannot be updated
        """
        try:
            with self.key_lock(key_id), self.session_factory() as db:
                key = self.load(db, key_id)
                if key is None:
                    return False
                self.reset_attempts(db, key)
                db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to reset admin key lockout: {e}")
            raise SystemAdminError("Failed to reset the admin key lockout", ErrorCode.AUTH_ERROR, 500)

        logger.info(f"Admin key {key.key_id} lockout reset")
        return True

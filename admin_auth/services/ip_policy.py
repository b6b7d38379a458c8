"""
IP Policy Store

Owns the admin key's IP allow-list: membership checks (exact, wildcard and
IPv4 CIDR), validated mutations with audit trail, a short-TTL read cache and
ad hoc IP risk scoring.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from admin_auth import metrics
from admin_auth.core.config import settings
from admin_auth.core.errors import ErrorCode, SystemAdminError, validation_error
from admin_auth.models import AdminKey, AuditAction
from admin_auth.schemas.common import GeoLocation
from admin_auth.services.audit_service import AuditService
from admin_auth.utils.security import ip_in_cidr, is_valid_ip_or_cidr, mask_ip, utcnow

logger = logging.getLogger(__name__)

IP_MANAGEMENT_RESOURCE = "IP_MANAGEMENT"
WILDCARD = "*"

FAILED_ACCESS_ACTIONS = (AuditAction.ADMIN_LOGIN_FAILED.value, AuditAction.SUSPICIOUS_ACCESS.value)
FAILED_ACCESS_POINTS = 5
FAILED_ACCESS_CAP = 25
NOT_ALLOWED_POINTS = 30
FIRST_TIME_POINTS = 20
HIGH_RISK_COUNTRY_POINTS = 25
EVALUATION_ERROR_SCORE = 75


@dataclass
class IpRiskScore:
    """Additive IP risk score; may exceed 100"""
    score: int = 0
    factors: List[str] = field(default_factory=list)

    def add(self, points: int, factor: str) -> None:
        self.score += points
        self.factors.append(factor)


def ip_matches_list(ip: str, allowed_ips: Optional[Iterable[str]]) -> bool:
    """
    Check an IP against an allow-list

    An empty list allows everything, as does the '*' wildcard. Otherwise the IP
    must equal an entry or fall inside one of its CIDR blocks.
    """
    entries = list(allowed_ips or [])
    if not entries or WILDCARD in entries:
        return True
    if ip in entries:
        return True
    return any("/" in entry and ip_in_cidr(ip, entry) for entry in entries)


def risk_level(score: int) -> str:
    """Bucket a score for display: high above 70, medium above 40, low otherwise"""
    clamped = max(0, min(100, score))
    if clamped > 70:
        return "high"
    if clamped > 40:
        return "medium"
    return "low"


class IpPolicyStore:
    """Service for the admin IP allow-list"""

    def __init__(
        self,
        session_factory: sessionmaker,
        audit: AuditService,
        clock: Callable[[], datetime] = utcnow,
        cache_ttl_seconds: Optional[int] = None,
        high_risk_countries: Optional[Iterable[str]] = None,
        key_id: Optional[str] = None,
        monotonic: Callable[[], float] = time.monotonic
    ):
        self.session_factory = session_factory
        self.audit = audit
        self.clock = clock
        self.cache_ttl_seconds = (
            settings.IP_CACHE_TTL_SECONDS if cache_ttl_seconds is None else cache_ttl_seconds
        )
        self.high_risk_countries = {
            c.upper() for c in (settings.HIGH_RISK_COUNTRIES if high_risk_countries is None else high_risk_countries)
        }
        self.key_id = key_id
        self._monotonic = monotonic
        self._cache: Optional[Tuple[List[str], float]] = None
        self._cache_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _load_key(self, db: Session, for_update: bool = False) -> Optional[AdminKey]:
        stmt = select(AdminKey)
        if self.key_id:
            stmt = stmt.where(AdminKey.key_id == self.key_id)
        else:
            stmt = stmt.order_by(AdminKey.created_at, AdminKey.key_id)
        if for_update:
            stmt = stmt.with_for_update()
        return db.scalars(stmt.limit(1)).first()

    def _cached_list(self) -> Optional[List[str]]:
        """Allow-list from cache or store; None when no admin key exists"""
        with self._cache_lock:
            if self._cache is not None:
                entries, loaded_at = self._cache
                if self._monotonic() - loaded_at < self.cache_ttl_seconds:
                    return list(entries)

        with self.session_factory() as db:
            key = self._load_key(db)
            if key is None:
                return None
            entries = list(key.allowed_ips or [])

        with self._cache_lock:
            self._cache = (entries, self._monotonic())
        return list(entries)

    def list(self) -> List[str]:
        """
        Current allow-list entries

        Raises:
            SystemAdminError: AUTH_ERROR if the store cannot be read
        """
        try:
            entries = self._cached_list()
        except SQLAlchemyError as e:
            logger.error(f"Failed to read IP allow-list: {e}")
            raise SystemAdminError("Failed to read the IP allow-list", ErrorCode.AUTH_ERROR, 500)
        return entries or []

    def is_allowed(self, ip: str) -> bool:
        """
        Check whether an IP may use the admin key

        Returns False when no admin key is provisioned or the store cannot be read.
        """
        try:
            entries = self._cached_list()
        except SQLAlchemyError as e:
            logger.error(f"IP allow-list check failed for {mask_ip(ip)}: {e}")
            return False

        if entries is None:
            logger.warning("No admin key provisioned; denying IP allow-list check")
            return False
        return ip_matches_list(ip, entries)

    def invalidate_cache(self) -> None:
        with self._cache_lock:
            self._cache = None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add(self, ip: str, label: Optional[str] = None, actor_ip: Optional[str] = None) -> bool:
        """
        Add an IP or CIDR block to the allow-list

        Args:
            ip: IPv4 address, IPv4 CIDR block or '*'
            label: Optional human-readable note, kept in the audit entry
            actor_ip: IP of the administrator making the change

        Returns:
            True once the entry is present (including when it already was)

        Raises:
            SystemAdminError: VALIDATION_ERROR for malformed input,
                RESOURCE_NOT_FOUND without an admin key
        """
        ip = (ip or "").strip()
        if not is_valid_ip_or_cidr(ip):
            metrics.ip_allowlist_changes_total.labels(operation="add", status="invalid").inc()
            raise validation_error("Invalid IP address or CIDR format")

        try:
            with self.session_factory() as db:
                key = self._require_key(db)
                current = list(key.allowed_ips or [])
                if ip in current:
                    logger.info(f"IP {ip} is already in the allow-list")
                    return True

                key.allowed_ips = current + [ip]
                user_id = key.user_id
                db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to add allowed IP {ip}: {e}")
            metrics.ip_allowlist_changes_total.labels(operation="add", status="error").inc()
            raise SystemAdminError("Failed to add the IP address", ErrorCode.VALIDATION_ERROR, 500)

        self.invalidate_cache()
        metrics.ip_allowlist_changes_total.labels(operation="add", status="success").inc()
        self.audit.record(
            user_id,
            AuditAction.IP_ALLOW_ADD,
            ip_address=actor_ip or ip,
            metadata={"ip": ip, "label": label},
            resource=IP_MANAGEMENT_RESOURCE
        )
        logger.info(f"Added allowed IP {ip}" + (f" ({label})" if label else ""))
        return True

    def remove(self, ip: str, requester_ip: Optional[str] = None) -> bool:
        """
        Remove an entry from the allow-list

        Args:
            ip: Entry to remove, matched exactly
            requester_ip: IP of the caller; removing it is refused so the
                administrator cannot lock themselves out

        Returns:
            True if removed, False if the entry was not present

        Raises:
            SystemAdminError: VALIDATION_ERROR when removing the caller's own IP
                or the last entry, RESOURCE_NOT_FOUND without an admin key
        """
        ip = (ip or "").strip()
        if not ip:
            raise validation_error("IP address is required")
        if requester_ip and ip == requester_ip:
            metrics.ip_allowlist_changes_total.labels(operation="remove", status="rejected").inc()
            raise validation_error("The IP address currently in use cannot be removed")

        try:
            with self.session_factory() as db:
                key = self._require_key(db)
                current = list(key.allowed_ips or [])
                if ip not in current:
                    logger.info(f"IP {ip} is not in the allow-list")
                    return False

                remaining = [entry for entry in current if entry != ip]
                if not remaining:
                    metrics.ip_allowlist_changes_total.labels(operation="remove", status="rejected").inc()
                    raise validation_error("At least one allowed IP address must remain")

                key.allowed_ips = remaining
                user_id = key.user_id
                db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to remove allowed IP {ip}: {e}")
            metrics.ip_allowlist_changes_total.labels(operation="remove", status="error").inc()
            raise SystemAdminError("Failed to remove the IP address", ErrorCode.VALIDATION_ERROR, 500)

        self.invalidate_cache()
        metrics.ip_allowlist_changes_total.labels(operation="remove", status="success").inc()
        self.audit.record(
            user_id,
            AuditAction.IP_ALLOW_REMOVE,
            ip_address=requester_ip or ip,
            metadata={"ip": ip},
            resource=IP_MANAGEMENT_RESOURCE
        )
        logger.info(f"Removed allowed IP {ip}")
        return True

    def _require_key(self, db: Session) -> AdminKey:
        key = self._load_key(db, for_update=True)
        if key is None:
            raise SystemAdminError("Admin key not found", ErrorCode.RESOURCE_NOT_FOUND, 404)
        return key

    # ------------------------------------------------------------------
    # Risk
    # ------------------------------------------------------------------

    def evaluate_risk(self, ip: str, geo: Optional[GeoLocation] = None) -> IpRiskScore:
        """
        Score an IP from allow-list membership, audit history and geo-location

        Factors: not_in_allowed_list (+30), previous_failed_attempts (+5 each,
        at most +25), first_time_access (+20), high_risk_country (+25). A store
        failure yields 75 with evaluation_error.
        """
        result = IpRiskScore()
        try:
            if not self.is_allowed(ip):
                result.add(NOT_ALLOWED_POINTS, "not_in_allowed_list")

            since = self.clock() - timedelta(days=settings.RISK_HISTORY_DAYS)
            with self.session_factory() as db:
                history = self.audit.ip_history(db, ip, since)

            failed = sum(1 for entry in history if entry.action in FAILED_ACCESS_ACTIONS)
            if failed > 0:
                result.add(min(failed * FAILED_ACCESS_POINTS, FAILED_ACCESS_CAP), "previous_failed_attempts")

            if not history:
                result.add(FIRST_TIME_POINTS, "first_time_access")

            if geo is not None and geo.country and geo.country.upper() in self.high_risk_countries:
                result.add(HIGH_RISK_COUNTRY_POINTS, "high_risk_country")
        except SQLAlchemyError as e:
            logger.error(f"IP risk evaluation failed for {mask_ip(ip)}: {e}")
            return IpRiskScore(score=EVALUATION_ERROR_SCORE, factors=["evaluation_error"])

        return result

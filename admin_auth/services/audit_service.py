"""
Audit Service

Append-only sink for system audit events plus the read side used by the
audit endpoints, the risk evaluator and the IP policy store.
"""

import csv
import io
import json
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from admin_auth import metrics
from admin_auth.core.errors import ErrorCode, SystemAdminError
from admin_auth.models import ACCESS_ACTIONS, AuditAction, AuditLog
from admin_auth.schemas.audit import AuditExport, AuditLogEntry, AuditLogFilter, AuditLogPage
from admin_auth.utils.security import utcnow

logger = logging.getLogger(__name__)

EXPORT_MAX_ROWS = 10000
EXPORT_COLUMNS = ["id", "userId", "action", "resource", "ipAddress", "metadata", "createdAt"]


class AuditService:
    """Service for writing and querying the system audit trail"""

    def __init__(self, session_factory: sessionmaker, clock: Callable[[], datetime] = utcnow):
        self.session_factory = session_factory
        self.clock = clock

    # ------------------------------------------------------------------
    # Sink
    # ------------------------------------------------------------------

    def record(
        self,
        user_id: Optional[str],
        action: Union[AuditAction, str],
        ip_address: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        resource: Optional[str] = None
    ) -> None:
        """
        Write an audit entry in its own short transaction

        A failed write is logged and dropped; it never propagates into the
        caller's authentication or session decision.

        Args:
            user_id: Acting administrator (None when unknown)
            action: Audit action tag
            ip_address: Originating IP
            metadata: Free-form JSON details (risk score, factors, geo, reason...)
            resource: Optional resource tag, e.g. IP_MANAGEMENT
        """
        action_value = action.value if isinstance(action, AuditAction) else str(action)
        now = self.clock()
        details = dict(metadata or {})
        details.setdefault("timestamp", now.isoformat())

        try:
            with self.session_factory() as db:
                db.add(AuditLog(
                    user_id=user_id,
                    action=action_value,
                    resource=resource,
                    ip_address=ip_address,
                    details=details,
                    created_at=now
                ))
                db.commit()
        except Exception as e:
            metrics.audit_write_failures_total.labels(action=action_value).inc()
            logger.error(f"Failed to record audit event {action_value}: {e}")

    # ------------------------------------------------------------------
    # History lookups (joined to the caller's session)
    # ------------------------------------------------------------------

    def ip_history(self, db: Session, ip_address: str, since: datetime, limit: int = 50) -> List[AuditLog]:
        """Most recent audit entries originating from an IP"""
        stmt = (
            select(AuditLog)
            .where(AuditLog.ip_address == ip_address, AuditLog.created_at >= since)
            .order_by(AuditLog.created_at.desc())
            .limit(limit)
        )
        return list(db.scalars(stmt))

    def last_login(self, db: Session, user_id: str) -> Optional[AuditLog]:
        """Latest ADMIN_LOGIN entry for a user, the source of the last known geo-location"""
        stmt = (
            select(AuditLog)
            .where(AuditLog.user_id == user_id, AuditLog.action == AuditAction.ADMIN_LOGIN.value)
            .order_by(AuditLog.created_at.desc(), AuditLog.log_id.desc())
            .limit(1)
        )
        return db.scalars(stmt).first()

    def count_since(self, db: Session, action: AuditAction, since: datetime) -> int:
        stmt = (
            select(func.count())
            .select_from(AuditLog)
            .where(AuditLog.action == action.value, AuditLog.created_at > since)
        )
        return db.scalar(stmt) or 0

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _filtered(self, stmt, filters: AuditLogFilter):
        if filters.user_id:
            stmt = stmt.where(AuditLog.user_id == filters.user_id)
        if filters.action:
            stmt = stmt.where(AuditLog.action == filters.action)
        if filters.resource:
            stmt = stmt.where(AuditLog.resource == filters.resource)
        if filters.ip_address:
            stmt = stmt.where(AuditLog.ip_address == filters.ip_address)
        if filters.from_date:
            stmt = stmt.where(AuditLog.created_at >= filters.from_date)
        if filters.to_date:
            stmt = stmt.where(AuditLog.created_at <= filters.to_date)
        return stmt

    def get_audit_logs(self, filters: Optional[AuditLogFilter] = None) -> AuditLogPage:
        """
        Get a page of audit logs, newest first

        Args:
            filters: user/action/resource/IP/date filters plus limit and offset

        Returns:
            AuditLogPage with 1-based page number and total page count

        Raises:
            SystemAdminError: AUDIT_ERROR if the query fails
        """
        filters = filters or AuditLogFilter()
        try:
            with self.session_factory() as db:
                total = db.scalar(self._filtered(select(func.count()).select_from(AuditLog), filters)) or 0
                stmt = (
                    self._filtered(select(AuditLog), filters)
                    .order_by(AuditLog.created_at.desc(), AuditLog.log_id.desc())
                    .offset(filters.offset)
                    .limit(filters.limit)
                )
                logs = [AuditLogEntry.model_validate(row) for row in db.scalars(stmt)]
        except SQLAlchemyError as e:
            logger.error(f"Error getting audit logs: {e}")
            raise SystemAdminError("Failed to retrieve audit logs", ErrorCode.AUDIT_ERROR, 500)

        return AuditLogPage(
            logs=logs,
            total=total,
            page=filters.offset // filters.limit + 1,
            page_size=filters.limit,
            total_pages=-(-total // filters.limit)
        )

    def get_access_logs(self, user_id: Optional[str] = None, limit: int = 20) -> List[AuditLogEntry]:
        """Login, logout and MFA-login entries, newest first"""
        stmt = select(AuditLog).where(AuditLog.action.in_([a.value for a in ACCESS_ACTIONS]))
        if user_id:
            stmt = stmt.where(AuditLog.user_id == user_id)
        stmt = stmt.order_by(AuditLog.created_at.desc(), AuditLog.log_id.desc()).limit(limit)

        try:
            with self.session_factory() as db:
                return [AuditLogEntry.model_validate(row) for row in db.scalars(stmt)]
        except SQLAlchemyError as e:
            logger.error(f"Error getting access logs: {e}")
            raise SystemAdminError("Failed to retrieve access logs", ErrorCode.AUDIT_ERROR, 500)

    def search_action_logs(self, action: str, limit: int = 100) -> List[AuditLogEntry]:
        """Entries for a single action tag, newest first"""
        stmt = (
            select(AuditLog)
            .where(AuditLog.action == action)
            .order_by(AuditLog.created_at.desc(), AuditLog.log_id.desc())
            .limit(limit)
        )
        try:
            with self.session_factory() as db:
                return [AuditLogEntry.model_validate(row) for row in db.scalars(stmt)]
        except SQLAlchemyError as e:
            logger.error(f"Error searching action logs for {action}: {e}")
            raise SystemAdminError("Failed to search audit logs", ErrorCode.AUDIT_ERROR, 500)

    def export_audit_data(
        self,
        filters: Optional[AuditLogFilter] = None,
        export_format: str = "json"
    ) -> AuditExport:
        """
        Export every entry matching the filters (pagination ignored)

        Args:
            filters: Same filters as get_audit_logs
            export_format: 'json' (list of rows) or 'csv' (CSV text)

        Returns:
            AuditExport with the rows and the filters that produced them

        Raises:
            SystemAdminError: VALIDATION_ERROR for unknown formats, AUDIT_ERROR on query failure
        """
        if export_format not in ("json", "csv"):
            raise SystemAdminError(
                f"Unsupported export format: {export_format}",
                ErrorCode.VALIDATION_ERROR,
                400
            )

        filters = filters or AuditLogFilter()
        stmt = (
            self._filtered(select(AuditLog), filters)
            .order_by(AuditLog.created_at.desc(), AuditLog.log_id.desc())
            .limit(EXPORT_MAX_ROWS)
        )
        try:
            with self.session_factory() as db:
                rows = [self._export_row(log) for log in db.scalars(stmt)]
        except SQLAlchemyError as e:
            logger.error(f"Error exporting audit data: {e}")
            raise SystemAdminError("Failed to export audit data", ErrorCode.AUDIT_ERROR, 500)

        data: Any = rows
        if export_format == "csv":
            output = io.StringIO()
            writer = csv.DictWriter(output, fieldnames=EXPORT_COLUMNS)
            writer.writeheader()
            writer.writerows(rows)
            data = output.getvalue()

        return AuditExport(
            format=export_format,
            count=len(rows),
            data=data,
            timestamp=self.clock(),
            filters=filters.model_dump(mode="json", exclude_none=True, exclude={"limit", "offset"})
        )

    @staticmethod
    def _export_row(log: AuditLog) -> Dict[str, Any]:
        return {
            "id": log.log_id,
            "userId": log.user_id,
            "action": log.action,
            "resource": log.resource,
            "ipAddress": log.ip_address,
            "metadata": json.dumps(log.details) if log.details is not None else None,
            "createdAt": log.created_at.isoformat(),
        }

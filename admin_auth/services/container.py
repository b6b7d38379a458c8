"""
Service wiring

Every service is constructed once per process and shared; the API layer and
scripts obtain them from a ServiceContainer.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import sessionmaker

from admin_auth.core.config import settings
from admin_auth.core.redis_client import RedisClient, get_redis
from admin_auth.services.admin_key_service import AdminKeyService
from admin_auth.services.audit_service import AuditService
from admin_auth.services.auth_service import AdminAuthService
from admin_auth.services.credential_verifier import CredentialVerifier
from admin_auth.services.ip_policy import IpPolicyStore
from admin_auth.services.mfa_service import (
    InMemoryTempTokenStore,
    MfaStepUpHandler,
    MfaVerifier,
    RedisTempTokenStore,
    TempTokenStore,
    build_mfa_verifier,
)
from admin_auth.services.monitoring_service import SystemMonitoringService
from admin_auth.services.risk_evaluator import RiskEvaluator
from admin_auth.services.session_service import AdminSessionManager
from admin_auth.utils.security import utcnow

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    audit: AuditService
    ip_policy: IpPolicyStore
    verifier: CredentialVerifier
    risk_evaluator: RiskEvaluator
    mfa: MfaStepUpHandler
    sessions: AdminSessionManager
    auth: AdminAuthService
    monitoring: SystemMonitoringService
    admin_keys: AdminKeyService


def build_temp_token_store(
    clock: Callable[[], datetime] = utcnow,
    redis: Optional[RedisClient] = None
) -> TempTokenStore:
    """Pending MFA store selected by ADMIN_MFA_STORE"""
    if settings.ADMIN_MFA_STORE == "redis":
        logger.info("Using Redis for MFA pending tokens")
        return RedisTempTokenStore(redis or get_redis(), clock=clock)
    return InMemoryTempTokenStore(clock=clock)


def build_container(
    session_factory: sessionmaker,
    clock: Callable[[], datetime] = utcnow,
    temp_token_store: Optional[TempTokenStore] = None,
    mfa_verifier: Optional[MfaVerifier] = None,
    risk_evaluator: Optional[RiskEvaluator] = None
) -> ServiceContainer:
    """
    Wire all services around one session factory and clock

    Args:
        session_factory: SQLAlchemy sessionmaker
        clock: Returns naive UTC now; injectable for tests
        temp_token_store: Override the configured pending MFA store
        mfa_verifier: Override the configured second-factor check
        risk_evaluator: Override the settings-driven evaluator
    """
    audit = AuditService(session_factory, clock=clock)
    verifier = CredentialVerifier(session_factory)
    sessions = AdminSessionManager(session_factory, audit, clock=clock)
    mfa = MfaStepUpHandler(
        temp_token_store or build_temp_token_store(clock=clock),
        mfa_verifier or build_mfa_verifier(),
        clock=clock
    )
    evaluator = risk_evaluator or RiskEvaluator()

    return ServiceContainer(
        audit=audit,
        ip_policy=IpPolicyStore(session_factory, audit, clock=clock),
        verifier=verifier,
        risk_evaluator=evaluator,
        mfa=mfa,
        sessions=sessions,
        auth=AdminAuthService(
            session_factory,
            verifier=verifier,
            risk_evaluator=evaluator,
            mfa=mfa,
            sessions=sessions,
            audit=audit,
            clock=clock
        ),
        monitoring=SystemMonitoringService(session_factory, audit, clock=clock),
        admin_keys=AdminKeyService(session_factory, verifier, audit, clock=clock),
    )

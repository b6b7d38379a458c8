"""
Pytest configuration for unit tests.

Services run against an in-memory SQLite database shared through a
StaticPool, with a controllable clock.
"""

from datetime import timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from admin_auth.core.database import Base
from admin_auth.models import AdminSession, AuditLog
from admin_auth.services.container import build_container
from admin_auth.services.mfa_service import FormatMfaVerifier, InMemoryTempTokenStore
from admin_auth.services.risk_evaluator import RiskEvaluator
from admin_auth.utils.security import generate_session_token
from tests.support import ADMIN_SECRET, ADMIN_USER_ID, ALLOWED_IP, BUSINESS_TIME, CHROME_UA, FakeClock


@pytest.fixture
def db_engine():
    """In-memory database shared by every session of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )
    Base.metadata.create_all(engine)

    yield engine

    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def clock():
    return FakeClock(BUSINESS_TIME)


@pytest.fixture
def temp_store(clock):
    return InMemoryTempTokenStore(clock=clock)


@pytest.fixture
def risk_evaluator():
    return RiskEvaluator(
        business_hours_start=9,
        business_hours_end=18,
        business_timezone="UTC",
        max_travel_speed_kmh=1000,
        step_up_threshold=40,
        deny_threshold=70,
        high_frequency_count=10
    )


@pytest.fixture
def services(session_factory, clock, temp_store, risk_evaluator):
    """Fully wired service container"""
    return build_container(
        session_factory,
        clock=clock,
        temp_token_store=temp_store,
        mfa_verifier=FormatMfaVerifier(),
        risk_evaluator=risk_evaluator
    )


@pytest.fixture
def admin_key(services):
    """Provisioned admin key allowing 10.0.0.0/8"""
    return services.admin_keys.provision(
        allowed_ips=["10.0.0.0/8"],
        secret=ADMIN_SECRET,
        user_id=ADMIN_USER_ID
    )


@pytest.fixture
def add_session(session_factory, clock):
    """Insert a historical admin session"""
    def _add(user_agent=CHROME_UA, ip_address=ALLOWED_IP, age=timedelta(days=2), active=False,
             user_id=ADMIN_USER_ID, duration=timedelta(hours=4)):
        created = clock() - age
        with session_factory() as db:
            session = AdminSession(
                user_id=user_id,
                token=generate_session_token(),
                ip_address=ip_address,
                user_agent=user_agent,
                is_active=active,
                created_at=created,
                expires_at=created + duration,
                last_activity=created
            )
            db.add(session)
            db.commit()
            return session
    return _add


@pytest.fixture
def add_audit(session_factory, clock):
    """Insert an audit entry at a given age"""
    def _add(action, ip_address=None, metadata=None, age=timedelta(0), user_id=ADMIN_USER_ID, resource=None):
        with session_factory() as db:
            entry = AuditLog(
                user_id=user_id,
                action=action.value if hasattr(action, "value") else action,
                resource=resource,
                ip_address=ip_address,
                details=metadata,
                created_at=clock() - age
            )
            db.add(entry)
            db.commit()
            return entry
    return _add

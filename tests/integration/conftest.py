"""
Pytest configuration for API tests.

The FastAPI app runs in-process through TestClient; the service container is
overridden with one bound to an in-memory database and a controllable clock.
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from admin_auth.api.dependencies import get_container
from admin_auth.core.database import Base
from admin_auth.main import app
from admin_auth.services.container import build_container
from admin_auth.services.mfa_service import FormatMfaVerifier, InMemoryTempTokenStore
from admin_auth.services.risk_evaluator import RiskEvaluator
from tests.support import API, ADMIN_SECRET, ADMIN_USER_ID, BUSINESS_TIME, FakeClock, headers


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "integration: API tests running the app in-process"
    )


@pytest.fixture
def clock():
    return FakeClock(BUSINESS_TIME)


@pytest.fixture
def container(clock):
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(engine)
    session_factory = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)

    container = build_container(
        session_factory,
        clock=clock,
        temp_token_store=InMemoryTempTokenStore(clock=clock),
        mfa_verifier=FormatMfaVerifier(),
        risk_evaluator=RiskEvaluator(business_timezone="UTC")
    )
    container.admin_keys.provision(allowed_ips=["10.0.0.0/8"], secret=ADMIN_SECRET, user_id=ADMIN_USER_ID)

    yield container

    engine.dispose()


@pytest.fixture
def client(container):
    app.dependency_overrides[get_container] = lambda: container
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def admin_token(client):
    """Session token for an administrator connecting from ALLOWED_IP"""
    response = client.post(f"{API}/auth/login", json={"key": ADMIN_SECRET}, headers=headers())
    assert response.status_code == 200, response.text
    return response.json()["token"]

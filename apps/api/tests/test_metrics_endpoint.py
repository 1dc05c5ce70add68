from __future__ import annotations

from collections.abc import Callable, Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from sitedesk.audit import AuditDispatcher, memory_sink, set_audit_dispatcher
from sitedesk.business.users.models import User
from sitedesk.core.auth import AuthUser, get_current_user
from sitedesk.core.config import get_settings
from sitedesk.core.database import Base, get_db
from sitedesk.main import app
from sitedesk.platform.security.policies import set_policy_engine


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def configure_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("METRICS_ENABLED", "true")
    set_audit_dispatcher(AuditDispatcher([memory_sink]))
    set_policy_engine(None)
    get_settings.cache_clear()
    yield
    set_audit_dispatcher(None)
    set_policy_engine(None)
    get_settings.cache_clear()


@pytest.fixture()
def client(db_session: Session) -> Generator[tuple[TestClient, Callable[[AuthUser], None]], None, None]:
    current = {"user": AuthUser(sub="1", role="office_manager", permissions=["metrics.read"])}

    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def override_get_current_user() -> AuthUser:
        return current["user"]

    def set_user(user: AuthUser) -> None:
        current["user"] = user

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    with TestClient(app) as test_client:
        yield test_client, set_user
    app.dependency_overrides.clear()


def test_metrics_endpoint_exposes_http_policy_and_sequence_metrics(
    client: tuple[TestClient, Callable[[AuthUser], None]],
    db_session: Session,
) -> None:
    test_client, _ = client
    db_session.add(User(email="rep@sitedesk.test", full_name="Rep", role="sales", is_sales_rep=True, sales_capacity=5))
    db_session.commit()

    assert test_client.get("/health").status_code == 200
    created = test_client.post("/projects/inquiries", json={"title": "Porch"})
    assert created.status_code == 201
    assert test_client.delete(f"/sales/projects/{created.json()['id']}/assignment").status_code == 200

    metrics = test_client.get("/metrics")
    assert metrics.status_code == 200
    body = metrics.text

    assert "http_requests_total" in body
    assert "http_request_duration_seconds" in body
    assert "policy_decisions_total" in body
    assert "policy_evaluation_duration_seconds" in body
    assert "sales_assignments_total" in body

    assert 'path="/health"' in body
    assert 'path="/sales/projects/{id}/assignment"' in body
    assert 'action="project.create",outcome="allow",role="office_manager"' in body


def test_metrics_requires_permission(client: tuple[TestClient, Callable[[AuthUser], None]]) -> None:
    test_client, set_user = client

    set_user(AuthUser(sub="2", role="owner"))
    assert test_client.get("/metrics").status_code == 403

    set_user(AuthUser(sub="3", role="technician", permissions=["system_admin"]))
    assert test_client.get("/metrics").status_code == 200


def test_metrics_disabled_returns_404(
    client: tuple[TestClient, Callable[[AuthUser], None]],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    test_client, _ = client
    monkeypatch.setenv("METRICS_ENABLED", "false")
    get_settings.cache_clear()

    assert test_client.get("/metrics").status_code == 404

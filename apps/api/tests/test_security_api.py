from __future__ import annotations

from collections.abc import Callable, Generator

import pytest
from fastapi.testclient import TestClient

from sitedesk import audit
from sitedesk.audit import AuditDispatcher, memory_sink, set_audit_dispatcher
from sitedesk.core.auth import AuthUser, get_current_user, issue_token
from sitedesk.core.config import get_settings
from sitedesk.main import app
from sitedesk.platform.security.policies import PolicyEngine, get_policy_engine, set_policy_engine
from sitedesk.platform.security.rules import ActionIs, Rule, RuleEffect


@pytest.fixture(autouse=True)
def clear_stubs() -> Generator[None, None, None]:
    set_audit_dispatcher(AuditDispatcher([memory_sink]))
    set_policy_engine(None)
    audit.security_events.clear()
    get_settings.cache_clear()
    yield
    set_audit_dispatcher(None)
    set_policy_engine(None)
    audit.security_events.clear()
    get_settings.cache_clear()


@pytest.fixture()
def client() -> Generator[tuple[TestClient, Callable[[AuthUser], None]], None, None]:
    current = {"user": AuthUser(sub="1", role="admin")}

    def override_get_current_user() -> AuthUser:
        return current["user"]

    def set_user(user: AuthUser) -> None:
        current["user"] = user

    app.dependency_overrides[get_current_user] = override_get_current_user
    with TestClient(app) as test_client:
        yield test_client, set_user
    app.dependency_overrides.clear()


def test_policy_rules_sorted_by_priority(client: tuple[TestClient, Callable[[AuthUser], None]]) -> None:
    test_client, _ = client

    response = test_client.get("/security/policy-rules")

    assert response.status_code == 200
    rules = response.json()
    priorities = [rule["priority"] for rule in rules]
    assert priorities == sorted(priorities, reverse=True)
    assert rules[0] == {"id": "system-admin-allow-all", "effect": "allow", "priority": 1000}
    assert rules[-1]["id"] == "resource-owner-access"


def test_runtime_rule_shows_up_and_applies(client: tuple[TestClient, Callable[[AuthUser], None]]) -> None:
    test_client, set_user = client
    engine = PolicyEngine()
    set_policy_engine(engine)

    engine.register_rule(Rule(id="freeze-policy-reads", effect=RuleEffect.DENY, priority=950, condition=ActionIs("security.policy.read")))

    set_user(AuthUser(sub="1", role="owner"))
    denied = test_client.get("/security/policy-rules")
    assert denied.status_code == 403
    assert denied.json()["detail"]["message"] == "Rule freeze-policy-reads deny"

    set_user(AuthUser(sub="9", role="technician", permissions=["system_admin"]))
    allowed = test_client.get("/security/policy-rules")
    assert allowed.status_code == 200
    assert {"id": "freeze-policy-reads", "effect": "deny", "priority": 950} in allowed.json()
    assert get_policy_engine() is engine


def test_policy_rules_forbidden_for_project_manager(client: tuple[TestClient, Callable[[AuthUser], None]]) -> None:
    test_client, set_user = client
    set_user(AuthUser(sub="3", role="project_manager"))

    assert test_client.get("/security/policy-rules").status_code == 403


def test_me_reflects_bearer_token() -> None:
    token = issue_token(42, "office_manager", ["metrics.read"])

    with TestClient(app) as test_client:
        response = test_client.get("/me", headers={"Authorization": f"Bearer {token}"})
        anonymous = test_client.get("/me", headers={"Authorization": "Bearer not-a-token"})

    assert response.status_code == 200
    assert response.json() == {"sub": "42", "user_id": 42, "role": "office_manager", "permissions": ["metrics.read"]}
    assert anonymous.json()["role"] == "anonymous"
    assert anonymous.json()["user_id"] is None


def test_health() -> None:
    with TestClient(app) as test_client:
        response = test_client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from sitedesk.core.auth import AuthUser
from sitedesk.core.rbac import require_policy
from sitedesk.platform.security.actions import Actions
from sitedesk.platform.security.policies import PolicyEngine, get_policy_engine


router = APIRouter(prefix="/security", tags=["security"])


@router.get("/policy-rules")
def list_policy_rules(
    _: AuthUser = Depends(require_policy(Actions.SECURITY_POLICY_READ)),
    engine: PolicyEngine = Depends(get_policy_engine),
) -> list[dict[str, Any]]:
    return sorted(engine.list_rules(), key=lambda rule: rule["priority"], reverse=True)

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from sitedesk.core.context import RequestContext


@dataclass(slots=True)
class PolicyUser:
    id: int | None
    role: str
    permissions: list[str] = field(default_factory=list)


@dataclass(slots=True)
class PolicyResource:
    type: str
    owner_id: int | None = None
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class PolicyContext:
    """Input to policy evaluation: who is asking to do what, to which resource."""

    action: str
    user: PolicyUser | None = None
    resource: PolicyResource | None = None
    request: RequestContext | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def role(self) -> str:
        if self.user is None or not self.user.role:
            return "anonymous"
        return self.user.role


@dataclass(slots=True, frozen=True)
class PolicyDecision:
    allow: bool
    reason: str | None = None

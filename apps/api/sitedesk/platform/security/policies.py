from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from threading import Lock
from typing import Any

from sitedesk.audit import log_security_event
from sitedesk.metrics import observe_policy_decision, observe_policy_evaluation
from sitedesk.otel import get_tracer
from sitedesk.platform.security.context import PolicyContext, PolicyDecision
from sitedesk.platform.security.errors import InvalidRuleError, PolicyDeniedError
from sitedesk.platform.security.rules import Rule, RuleEffect, default_rules


logger = logging.getLogger("sitedesk.policy")
tracer = get_tracer("sitedesk.policy")

NO_MATCH_REASON = "No matching allow rule"

AuditHook = Callable[[PolicyContext, PolicyDecision], Any]
MetricsHook = Callable[[PolicyContext, PolicyDecision], Any]


def _audit_decision(ctx: PolicyContext, decision: PolicyDecision) -> None:
    if decision.allow:
        action, outcome, meta = f"policy.allowed:{ctx.action}", "success", {}
    else:
        action, outcome, meta = f"policy.denied:{ctx.action}", "denied", {"reason": decision.reason}
    log_security_event(
        ctx.request,
        action,
        outcome,
        meta,
        actor_user_id=ctx.user.id if ctx.user else None,
        actor_role=ctx.role,
    )


def _count_decision(ctx: PolicyContext, decision: PolicyDecision) -> None:
    observe_policy_decision(ctx.action, "allow" if decision.allow else "deny", ctx.role)


class PolicyEngine:
    """Ordered rule evaluation with a default deny.

    Rules are sorted by descending priority at evaluation time, so rules
    registered at runtime take effect immediately. The first matching rule
    decides; a rule whose condition raises is treated as not matching.
    """

    def __init__(
        self,
        rules: Iterable[Rule] | None = None,
        *,
        audit_hook: AuditHook | None = None,
        metrics_hook: MetricsHook | None = None,
    ) -> None:
        self._rules: list[Rule] = list(default_rules() if rules is None else rules)
        self._lock = Lock()
        self._audit_hook = audit_hook or _audit_decision
        self._metrics_hook = metrics_hook or _count_decision

    def register_rule(self, rule: Rule) -> None:
        if not isinstance(rule, Rule):
            raise InvalidRuleError(f"expected Rule, got {type(rule).__name__}")
        with self._lock:
            self._rules.append(rule)

    def list_rules(self) -> list[dict[str, Any]]:
        with self._lock:
            return [rule.describe() for rule in self._rules]

    def _ordered_rules(self) -> list[Rule]:
        with self._lock:
            snapshot = list(self._rules)
        return sorted(snapshot, key=lambda rule: rule.priority, reverse=True)

    def evaluate_policy(self, ctx: PolicyContext) -> PolicyDecision:
        started = time.perf_counter()
        with tracer.start_as_current_span("policy.evaluate") as span:
            span.set_attribute("policy.action", ctx.action)
            span.set_attribute("policy.role", ctx.role)
            decision = self._evaluate(ctx)
            span.set_attribute("policy.allow", decision.allow)
        observe_policy_evaluation(time.perf_counter() - started)
        return decision

    def _evaluate(self, ctx: PolicyContext) -> PolicyDecision:
        for rule in self._ordered_rules():
            try:
                matched = rule.matches(ctx)
            except Exception as exc:
                logger.warning(
                    "policy_rule_error",
                    extra={"policy_action": ctx.action, "error": f"{rule.id}: {exc}"},
                )
                continue
            if not matched:
                continue
            if rule.effect is RuleEffect.ALLOW:
                return PolicyDecision(allow=True)
            return PolicyDecision(allow=False, reason=f"Rule {rule.id} deny")
        return PolicyDecision(allow=False, reason=NO_MATCH_REASON)

    def authorize(self, ctx: PolicyContext) -> PolicyDecision:
        decision = self.evaluate_policy(ctx)
        try:
            self._audit_hook(ctx, decision)
        except Exception as exc:
            logger.warning("policy_audit_failed", extra={"policy_action": ctx.action, "error": str(exc)})
        try:
            self._metrics_hook(ctx, decision)
        except Exception as exc:
            logger.warning("policy_metrics_failed", extra={"policy_action": ctx.action, "error": str(exc)})
        logger.debug(
            "policy_decision",
            extra={"policy_action": ctx.action, "policy_outcome": "allow" if decision.allow else "deny"},
        )
        return decision

    def enforce(self, ctx: PolicyContext) -> PolicyDecision:
        decision = self.authorize(ctx)
        if not decision.allow:
            raise PolicyDeniedError(ctx.action, decision.reason)
        return decision


_POLICY_ENGINE: PolicyEngine | None = None
_POLICY_LOCK = Lock()


def get_policy_engine() -> PolicyEngine:
    """Get the process-wide policy engine, creating it with the built-in rules on first use."""

    global _POLICY_ENGINE
    with _POLICY_LOCK:
        if _POLICY_ENGINE is None:
            _POLICY_ENGINE = PolicyEngine()
        return _POLICY_ENGINE


def set_policy_engine(engine: PolicyEngine | None) -> None:
    """Replace the process-wide policy engine. ``None`` resets to the built-in rules on next use."""

    global _POLICY_ENGINE
    with _POLICY_LOCK:
        _POLICY_ENGINE = engine

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol

from sitedesk.platform.security.actions import SYSTEM_ADMIN_PERMISSION, Actions, Roles
from sitedesk.platform.security.context import PolicyContext
from sitedesk.platform.security.errors import InvalidRuleError


class RuleEffect(StrEnum):
    ALLOW = "allow"
    DENY = "deny"


class Condition(Protocol):
    """A side-effect free test against a policy context."""

    def matches(self, ctx: PolicyContext) -> bool:
        ...


@dataclass(slots=True, frozen=True)
class ActionIs:
    action: str

    def matches(self, ctx: PolicyContext) -> bool:
        return ctx.action == self.action


@dataclass(slots=True, frozen=True)
class RoleIn:
    roles: frozenset[str]

    def matches(self, ctx: PolicyContext) -> bool:
        return ctx.user is not None and ctx.user.role in self.roles


@dataclass(slots=True, frozen=True)
class PermissionIncludes:
    permission: str

    def matches(self, ctx: PolicyContext) -> bool:
        return ctx.user is not None and self.permission in ctx.user.permissions


@dataclass(slots=True, frozen=True)
class ResourceOwner:
    def matches(self, ctx: PolicyContext) -> bool:
        if ctx.user is None or ctx.resource is None:
            return False
        if ctx.resource.owner_id is None or ctx.user.id is None:
            return False
        return ctx.user.id == ctx.resource.owner_id


@dataclass(slots=True, frozen=True)
class Authenticated:
    def matches(self, ctx: PolicyContext) -> bool:
        return ctx.user is not None


@dataclass(slots=True, frozen=True)
class AllOf:
    conditions: tuple[Condition, ...]

    def matches(self, ctx: PolicyContext) -> bool:
        return all(condition.matches(ctx) for condition in self.conditions)


@dataclass(slots=True, frozen=True)
class AnyOf:
    conditions: tuple[Condition, ...]

    def matches(self, ctx: PolicyContext) -> bool:
        return any(condition.matches(ctx) for condition in self.conditions)


@dataclass(slots=True, frozen=True)
class Predicate:
    """Wraps an arbitrary callable registered at runtime."""

    func: Callable[[PolicyContext], bool]
    description: str = "predicate"

    def matches(self, ctx: PolicyContext) -> bool:
        return bool(self.func(ctx))


@dataclass(slots=True, frozen=True)
class Rule:
    id: str
    effect: RuleEffect
    priority: int
    condition: Condition = field(compare=False)

    def __post_init__(self) -> None:
        if not self.id:
            raise InvalidRuleError("rule id is required")
        try:
            object.__setattr__(self, "effect", RuleEffect(self.effect))
        except ValueError as exc:
            raise InvalidRuleError(f"rule {self.id}: unknown effect {self.effect!r}") from exc
        if isinstance(self.priority, bool) or not isinstance(self.priority, int):
            raise InvalidRuleError(f"rule {self.id}: priority must be an integer")

    @classmethod
    def from_predicate(
        cls,
        rule_id: str,
        effect: RuleEffect | str,
        priority: int,
        predicate: Callable[[PolicyContext], bool],
    ) -> Rule:
        return cls(id=rule_id, effect=RuleEffect(effect), priority=priority, condition=Predicate(predicate, rule_id))

    def matches(self, ctx: PolicyContext) -> bool:
        return self.condition.matches(ctx)

    def describe(self) -> dict[str, Any]:
        return {"id": self.id, "effect": self.effect.value, "priority": self.priority}


def allow_roles(rule_id: str, action: Actions, roles: Iterable[Roles], priority: int) -> Rule:
    return Rule(
        id=rule_id,
        effect=RuleEffect.ALLOW,
        priority=priority,
        condition=AllOf((ActionIs(action.value), RoleIn(frozenset(role.value for role in roles)))),
    )


_MANAGERS = (Roles.OFFICE_MANAGER, Roles.SHOP_MANAGER, Roles.OWNER, Roles.ADMIN)
_PM_AND_UP = (Roles.PROJECT_MANAGER, Roles.OFFICE_MANAGER, Roles.OWNER, Roles.ADMIN)
_OFFICE_AND_UP = (Roles.OFFICE_MANAGER, Roles.OWNER, Roles.ADMIN)
_SHOP_AND_UP = (Roles.SHOP_MANAGER, Roles.OFFICE_MANAGER, Roles.OWNER, Roles.ADMIN)


def default_rules() -> list[Rule]:
    """Built-in rule set. Anything not granted here is denied."""

    return [
        Rule(
            id="system-admin-allow-all",
            effect=RuleEffect.ALLOW,
            priority=1000,
            condition=PermissionIncludes(SYSTEM_ADMIN_PERMISSION),
        ),
        Rule(
            id="owner-role-allow-all",
            effect=RuleEffect.ALLOW,
            priority=900,
            condition=RoleIn(frozenset({Roles.OWNER.value})),
        ),
        allow_roles("user-list-owner", Actions.USER_LIST, (Roles.OWNER,), 500),
        allow_roles("user-create-owner", Actions.USER_CREATE, (Roles.OWNER,), 500),
        allow_roles("user-delete-owner", Actions.USER_DELETE, (Roles.OWNER,), 500),
        allow_roles("security-policy-read-admin", Actions.SECURITY_POLICY_READ, (Roles.OWNER, Roles.ADMIN), 500),
        allow_roles("order-create-office-manager+", Actions.ORDER_CREATE, _OFFICE_AND_UP, 450),
        allow_roles("order-update-office-manager+", Actions.ORDER_UPDATE, _OFFICE_AND_UP, 450),
        allow_roles("order-delete-owner-admin", Actions.ORDER_DELETE, (Roles.OWNER, Roles.ADMIN), 450),
        allow_roles(
            "project-create-manager+",
            Actions.PROJECT_CREATE,
            (Roles.PROJECT_MANAGER, Roles.OFFICE_MANAGER, Roles.OWNER),
            440,
        ),
        allow_roles(
            "project-update-manager+",
            Actions.PROJECT_UPDATE,
            (Roles.PROJECT_MANAGER, Roles.OFFICE_MANAGER, Roles.OWNER),
            440,
        ),
        allow_roles("project-delete-owner", Actions.PROJECT_DELETE, (Roles.OWNER,), 440),
        allow_roles(
            "quote-create-manager+",
            Actions.QUOTE_CREATE,
            (Roles.PROJECT_MANAGER, Roles.OFFICE_MANAGER, Roles.OWNER),
            435,
        ),
        allow_roles(
            "quote-update-manager+",
            Actions.QUOTE_UPDATE,
            (Roles.PROJECT_MANAGER, Roles.OFFICE_MANAGER, Roles.OWNER),
            435,
        ),
        allow_roles(
            "inventory-transaction-create-managers",
            Actions.INVENTORY_TRANSACTION_CREATE,
            (Roles.SHOP_MANAGER, Roles.OFFICE_MANAGER, Roles.OWNER),
            430,
        ),
        allow_roles("change-order-create-manager+", Actions.CHANGE_ORDER_CREATE, _PM_AND_UP, 426),
        allow_roles("change-order-update-manager+", Actions.CHANGE_ORDER_UPDATE, _PM_AND_UP, 426),
        allow_roles("change-order-delete-owner-admin", Actions.CHANGE_ORDER_DELETE, (Roles.OWNER, Roles.ADMIN), 426),
        allow_roles("change-order-approve-manager+", Actions.CHANGE_ORDER_APPROVE, _PM_AND_UP, 426),
        allow_roles("work-order-create-manager+", Actions.WORK_ORDER_CREATE, _PM_AND_UP, 425),
        allow_roles("work-order-update-manager+", Actions.WORK_ORDER_UPDATE, _PM_AND_UP, 425),
        allow_roles("invoice-create-office-manager+", Actions.INVOICE_CREATE, _OFFICE_AND_UP, 424),
        allow_roles("invoice-update-office-manager+", Actions.INVOICE_UPDATE, _OFFICE_AND_UP, 424),
        allow_roles("invoice-send-office-manager+", Actions.INVOICE_SEND, _OFFICE_AND_UP, 424),
        allow_roles("invoice-mark-paid-office-manager+", Actions.INVOICE_MARK_PAID, _OFFICE_AND_UP, 424),
        allow_roles("po-create-shop-manager+", Actions.PURCHASE_ORDER_CREATE, _SHOP_AND_UP, 423),
        allow_roles("po-receive-shop-manager+", Actions.PURCHASE_ORDER_RECEIVE, _SHOP_AND_UP, 423),
        allow_roles("material-create-managers", Actions.MATERIAL_CREATE, _MANAGERS, 422),
        allow_roles("material-update-managers", Actions.MATERIAL_UPDATE, _MANAGERS, 422),
        allow_roles("material-delete-managers", Actions.MATERIAL_DELETE, _MANAGERS, 422),
        allow_roles("material-stock-update-managers", Actions.MATERIAL_STOCK_UPDATE, _MANAGERS, 422),
        allow_roles("feature-flag-list", Actions.FEATURE_FLAG_LIST, (Roles.OWNER, Roles.OFFICE_MANAGER), 420),
        allow_roles("feature-flag-upsert", Actions.FEATURE_FLAG_UPSERT, (Roles.OWNER, Roles.OFFICE_MANAGER), 420),
        allow_roles("sales-assign-office-manager+", Actions.SALES_ASSIGN, (Roles.OFFICE_MANAGER, Roles.OWNER, Roles.ADMIN, Roles.SALES), 415),
        allow_roles(
            "sales-workload-read",
            Actions.SALES_WORKLOAD_READ,
            (Roles.OFFICE_MANAGER, Roles.OWNER, Roles.ADMIN, Roles.SALES, Roles.PROJECT_MANAGER),
            415,
        ),
        allow_roles("pm-read-projects", Actions.PROJECT_READ, (Roles.PROJECT_MANAGER,), 400),
        Rule(
            id="resource-owner-access",
            effect=RuleEffect.ALLOW,
            priority=300,
            condition=ResourceOwner(),
        ),
    ]

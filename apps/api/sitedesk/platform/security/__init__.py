from sitedesk.platform.security.actions import SYSTEM_ADMIN_PERMISSION, Actions, Roles
from sitedesk.platform.security.context import PolicyContext, PolicyDecision, PolicyResource, PolicyUser
from sitedesk.platform.security.errors import AuthorizationError, InvalidRuleError, PolicyDeniedError
from sitedesk.platform.security.rules import (
    ActionIs,
    AllOf,
    AnyOf,
    Authenticated,
    PermissionIncludes,
    Predicate,
    ResourceOwner,
    RoleIn,
    Rule,
    RuleEffect,
    default_rules,
)
from sitedesk.platform.security.policies import PolicyEngine, get_policy_engine, set_policy_engine

__all__ = [
    "SYSTEM_ADMIN_PERMISSION",
    "Actions",
    "Roles",
    "PolicyContext",
    "PolicyDecision",
    "PolicyResource",
    "PolicyUser",
    "AuthorizationError",
    "InvalidRuleError",
    "PolicyDeniedError",
    "ActionIs",
    "AllOf",
    "AnyOf",
    "Authenticated",
    "PermissionIncludes",
    "Predicate",
    "ResourceOwner",
    "RoleIn",
    "Rule",
    "RuleEffect",
    "default_rules",
    "PolicyEngine",
    "get_policy_engine",
    "set_policy_engine",
]

from __future__ import annotations


class AuthorizationError(Exception):
    """Base authorization error for policy enforcement failures."""


class PolicyDeniedError(AuthorizationError):
    """Raised by callers that choose to turn a deny decision into an exception."""

    def __init__(self, action: str, reason: str | None) -> None:
        self.action = action
        self.reason = reason or "Access denied"
        super().__init__(f"Policy denied '{action}': {self.reason}")


class InvalidRuleError(ValueError):
    """Raised when a rule definition cannot be registered."""

from collections.abc import Callable

from fastapi import Depends, HTTPException, Request, status

from sitedesk.core.auth import AuthUser, get_current_user
from sitedesk.platform.security.context import PolicyContext, PolicyResource, PolicyUser
from sitedesk.platform.security.errors import PolicyDeniedError
from sitedesk.platform.security.policies import PolicyEngine, get_policy_engine


ResourceResolver = Callable[[Request], PolicyResource | None]


def build_policy_context(
    action: str,
    user: AuthUser,
    request: Request | None = None,
    resource: PolicyResource | None = None,
) -> PolicyContext:
    policy_user = None
    if user.is_authenticated:
        policy_user = PolicyUser(id=user.user_id, role=user.role, permissions=list(user.permissions))
    request_context = getattr(request.state, "context", None) if request is not None else None
    return PolicyContext(action=action, user=policy_user, resource=resource, request=request_context)


def require_policy(action: str, resource_resolver: ResourceResolver | None = None) -> Callable[..., AuthUser]:
    async def checker(
        request: Request,
        user: AuthUser = Depends(get_current_user),
        engine: PolicyEngine = Depends(get_policy_engine),
    ) -> AuthUser:
        resource = resource_resolver(request) if resource_resolver is not None else None
        try:
            engine.enforce(build_policy_context(action, user, request, resource))
        except PolicyDeniedError as exc:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"error": "forbidden", "message": exc.reason},
            ) from exc
        return user

    return checker

from dataclasses import dataclass, field

from jose import JWTError, jwt
from starlette.requests import Request

from sitedesk.core.config import get_settings


ANONYMOUS_ROLE = "anonymous"


@dataclass
class AuthUser:
    sub: str
    role: str
    permissions: list[str] = field(default_factory=list)

    @property
    def user_id(self) -> int | None:
        try:
            return int(self.sub)
        except (TypeError, ValueError):
            return None

    @property
    def is_authenticated(self) -> bool:
        return self.role != ANONYMOUS_ROLE


def _anonymous() -> AuthUser:
    return AuthUser(sub="anonymous", role=ANONYMOUS_ROLE, permissions=[])


async def get_current_user(request: Request) -> AuthUser:
    auth_header = request.headers.get("authorization", "")
    token = auth_header.replace("Bearer ", "") if auth_header.startswith("Bearer ") else ""

    if not token:
        return _anonymous()

    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return _anonymous()

    subject = str(payload.get("sub", "anonymous"))
    role = payload.get("role")
    if not isinstance(role, str) or not role:
        role = "user"
    permissions = payload.get("permissions", [])
    if not isinstance(permissions, list):
        permissions = []

    user = AuthUser(sub=subject, role=role, permissions=[str(item) for item in permissions])
    context = getattr(request.state, "context", None)
    if context is not None:
        context.user_id = user.user_id
        context.user_role = user.role
    return user


def issue_token(user_id: int, role: str, permissions: list[str] | None = None) -> str:
    settings = get_settings()
    claims = {"sub": str(user_id), "role": role, "permissions": permissions or []}
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from sitedesk.business.projects.api import router as projects_router
from sitedesk.business.sales.api import router as sales_router
from sitedesk.core.auth import AuthUser, get_current_user
from sitedesk.core.config import get_settings
from sitedesk.metrics import generate_metrics_payload, metrics_content_type
from sitedesk.platform.flags.api import router as feature_flags_router
from sitedesk.platform.security.actions import SYSTEM_ADMIN_PERMISSION
from sitedesk.platform.security.api import router as security_router

METRICS_PERMISSION = "metrics.read"

router = APIRouter()
router.include_router(projects_router)
router.include_router(sales_router)
router.include_router(feature_flags_router)
router.include_router(security_router)


@router.get("/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@router.get("/me", tags=["auth"])
async def me(user: AuthUser = Depends(get_current_user)) -> dict[str, str | int | None | list[str]]:
    return {
        "sub": user.sub,
        "user_id": user.user_id,
        "role": user.role,
        "permissions": user.permissions,
    }


@router.get("/metrics", tags=["system"])
def metrics(user: AuthUser = Depends(get_current_user)) -> Response:
    settings = get_settings()
    if not settings.metrics_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not found")
    if not {METRICS_PERMISSION, SYSTEM_ADMIN_PERMISSION} & set(user.permissions):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Missing permission: {METRICS_PERMISSION}")
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())

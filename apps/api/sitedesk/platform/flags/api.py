from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from sitedesk.core.auth import AuthUser, get_current_user
from sitedesk.core.database import get_db
from sitedesk.core.rbac import require_policy
from sitedesk.platform.flags.schemas import FeatureFlagEvaluation, FeatureFlagRead, FeatureFlagUpsert
from sitedesk.platform.flags.service import FeatureFlagService, FlagContext, get_feature_flag_service
from sitedesk.platform.security.actions import Actions


router = APIRouter(prefix="/feature-flags", tags=["feature-flags"])


@router.get("", response_model=list[FeatureFlagRead])
def list_feature_flags(
    _: AuthUser = Depends(require_policy(Actions.FEATURE_FLAG_LIST)),
    session: Session = Depends(get_db),
    service: FeatureFlagService = Depends(get_feature_flag_service),
) -> list[FeatureFlagRead]:
    return service.list_flags(session)


@router.put("", response_model=FeatureFlagRead)
def upsert_feature_flag(
    payload: FeatureFlagUpsert,
    _: AuthUser = Depends(require_policy(Actions.FEATURE_FLAG_UPSERT)),
    session: Session = Depends(get_db),
    service: FeatureFlagService = Depends(get_feature_flag_service),
) -> FeatureFlagRead:
    return service.upsert_flag(session, payload)


@router.get("/{key}/evaluate", response_model=FeatureFlagEvaluation)
def evaluate_feature_flag(
    key: str,
    user: AuthUser = Depends(get_current_user),
    session: Session = Depends(get_db),
    service: FeatureFlagService = Depends(get_feature_flag_service),
) -> FeatureFlagEvaluation:
    context = FlagContext(user_id=user.user_id, user_role=user.role if user.is_authenticated else None)
    return FeatureFlagEvaluation(key=key, enabled=service.is_feature_enabled(session, key, context))

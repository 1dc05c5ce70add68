from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from sitedesk.business.projects.schemas import InquiryCreate, ProjectRead
from sitedesk.business.projects.service import project_intake_service
from sitedesk.core.auth import AuthUser
from sitedesk.core.database import get_db
from sitedesk.core.rbac import require_policy
from sitedesk.platform.security.actions import Actions


router = APIRouter(prefix="/projects", tags=["projects"])


@router.post("/inquiries", response_model=ProjectRead, status_code=status.HTTP_201_CREATED)
def create_inquiry(
    payload: InquiryCreate,
    user: AuthUser = Depends(require_policy(Actions.PROJECT_CREATE)),
    session: Session = Depends(get_db),
) -> ProjectRead:
    return project_intake_service.create_inquiry(session, payload, created_by_user_id=user.user_id)

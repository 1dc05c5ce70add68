from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from sitedesk.business.projects.repository import ProjectRepository
from sitedesk.business.sales.schemas import (
    AssignmentResult,
    ManualAssignmentRequest,
    SalesRepMetricsRead,
    SalesRepSummary,
    SalesRepWorkloadRead,
)
from sitedesk.business.sales.service import sales_assignment_service
from sitedesk.core.auth import AuthUser
from sitedesk.core.database import get_db
from sitedesk.core.rbac import require_policy
from sitedesk.platform.security.actions import Actions


router = APIRouter(prefix="/sales", tags=["sales"])
_projects = ProjectRepository()


def _require_project(session: Session, project_id: int) -> None:
    if _projects.get(session, project_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="project not found")


def _assignment_result(session: Session, project_id: int, assigned: bool) -> AssignmentResult:
    project = _projects.get(session, project_id)
    if project is None:
        return AssignmentResult(project_id=project_id, assigned=assigned)
    session.refresh(project)
    rep = None
    if project.assigned_sales_rep_id is not None:
        rep = sales_assignment_service.user_repository.get(session, project.assigned_sales_rep_id)
    return AssignmentResult(
        project_id=project_id,
        assigned=assigned,
        sales_rep=SalesRepSummary.model_validate(rep) if rep is not None else None,
        assigned_at=project.assigned_at,
    )


@router.get("/workloads", response_model=list[SalesRepWorkloadRead])
def list_workloads(
    _: AuthUser = Depends(require_policy(Actions.SALES_WORKLOAD_READ)),
    session: Session = Depends(get_db),
) -> list[SalesRepWorkloadRead]:
    return [
        SalesRepWorkloadRead(
            user_id=item.user_id,
            user=SalesRepSummary.model_validate(item.user),
            active_project_count=item.active_project_count,
            capacity=item.capacity,
            utilization_percentage=item.utilization_percentage,
        )
        for item in sales_assignment_service.get_sales_rep_workloads(session)
    ]


@router.get("/reps/{rep_id}/metrics", response_model=SalesRepMetricsRead)
def sales_rep_metrics(
    rep_id: int,
    period_days: int = Query(default=30, ge=1, le=365),
    _: AuthUser = Depends(require_policy(Actions.SALES_WORKLOAD_READ)),
    session: Session = Depends(get_db),
) -> SalesRepMetricsRead:
    return sales_assignment_service.get_sales_rep_metrics(session, rep_id, period_days=period_days)


@router.post("/projects/{project_id}/auto-assign", response_model=AssignmentResult)
def auto_assign(
    project_id: int,
    _: AuthUser = Depends(require_policy(Actions.SALES_ASSIGN)),
    session: Session = Depends(get_db),
) -> AssignmentResult:
    _require_project(session, project_id)
    rep = sales_assignment_service.auto_assign_sales_rep(session, project_id)
    return _assignment_result(session, project_id, rep is not None)


@router.put("/projects/{project_id}/assignment", response_model=AssignmentResult)
def assign(
    project_id: int,
    payload: ManualAssignmentRequest,
    _: AuthUser = Depends(require_policy(Actions.SALES_ASSIGN)),
    session: Session = Depends(get_db),
) -> AssignmentResult:
    _require_project(session, project_id)
    if not sales_assignment_service.assign_sales_rep(session, project_id, payload.sales_rep_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="sales rep must exist, be active and be a sales rep",
        )
    return _assignment_result(session, project_id, True)


@router.delete("/projects/{project_id}/assignment", response_model=AssignmentResult)
def unassign(
    project_id: int,
    _: AuthUser = Depends(require_policy(Actions.SALES_ASSIGN)),
    session: Session = Depends(get_db),
) -> AssignmentResult:
    if not sales_assignment_service.unassign_sales_rep(session, project_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="project not found")
    return _assignment_result(session, project_id, False)

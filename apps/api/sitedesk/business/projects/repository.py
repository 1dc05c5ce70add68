from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from sitedesk.business.projects.models import OPEN_PROJECT_STATUSES, Project


class ProjectRepository:
    def get(self, session: Session, project_id: int) -> Project | None:
        return session.get(Project, project_id)

    def add(self, session: Session, project: Project) -> Project:
        session.add(project)
        session.flush()
        return project

    def count_open_by_rep(self, session: Session, rep_ids: Iterable[int]) -> dict[int, int]:
        ids = list(rep_ids)
        if not ids:
            return {}
        stmt = (
            select(Project.assigned_sales_rep_id, func.count(Project.id))
            .where(
                Project.assigned_sales_rep_id.in_(ids),
                Project.status.in_([status.value for status in OPEN_PROJECT_STATUSES]),
            )
            .group_by(Project.assigned_sales_rep_id)
        )
        return {int(rep_id): int(count) for rep_id, count in session.execute(stmt).all()}

    def set_assignment(self, session: Session, project_id: int, rep_id: int | None, assigned_at: datetime | None) -> int:
        """Write only the assignment columns and return the number of rows touched."""

        result = session.execute(
            update(Project)
            .where(Project.id == project_id)
            .values(assigned_sales_rep_id=rep_id, assigned_at=assigned_at)
            .execution_options(synchronize_session="fetch")
        )
        return int(result.rowcount or 0)

    def list_for_rep_since(self, session: Session, rep_id: int, since: datetime) -> list[Project]:
        stmt = select(Project).where(Project.assigned_sales_rep_id == rep_id, Project.created_at >= since)
        return list(session.execute(stmt).scalars().all())

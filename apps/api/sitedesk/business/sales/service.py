from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy.orm import Session

from sitedesk.business.projects.models import ProjectStatus
from sitedesk.business.projects.repository import ProjectRepository
from sitedesk.business.sales.schemas import SalesRepMetricsRead
from sitedesk.business.users.models import User
from sitedesk.business.users.repository import UserRepository
from sitedesk.core.config import get_settings
from sitedesk.events import publish
from sitedesk.metrics import observe_sales_assignment


logger = logging.getLogger("sitedesk.sales")

FULL_UTILIZATION = 100


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def utilization_percentage(active_project_count: int, capacity: int) -> int:
    if capacity <= 0:
        return FULL_UTILIZATION
    ratio = Decimal(active_project_count) * 100 / Decimal(capacity)
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(slots=True)
class SalesRepWorkload:
    user_id: int
    user: User
    active_project_count: int
    capacity: int
    utilization_percentage: int


@dataclass(slots=True)
class SalesAssignmentService:
    user_repository: UserRepository = field(default_factory=UserRepository)
    project_repository: ProjectRepository = field(default_factory=ProjectRepository)
    default_capacity: int | None = None

    def _capacity_for(self, user: User) -> int:
        if user.sales_capacity is not None:
            return user.sales_capacity
        if self.default_capacity is not None:
            return self.default_capacity
        return get_settings().sales_default_capacity

    def get_sales_rep_workloads(self, session: Session) -> list[SalesRepWorkload]:
        """Active sales reps ordered by utilization, least loaded first.

        Ties keep the id order the reps were read in.
        """

        reps = self.user_repository.list_active_sales_reps(session)
        counts = self.project_repository.count_open_by_rep(session, [rep.id for rep in reps])
        workloads = []
        for rep in reps:
            active = counts.get(rep.id, 0)
            capacity = self._capacity_for(rep)
            workloads.append(
                SalesRepWorkload(
                    user_id=rep.id,
                    user=rep,
                    active_project_count=active,
                    capacity=capacity,
                    utilization_percentage=utilization_percentage(active, capacity),
                )
            )
        workloads.sort(key=lambda item: item.utilization_percentage)
        return workloads

    def auto_assign_sales_rep(self, session: Session, project_id: int) -> User | None:
        """Assign the least-loaded rep under capacity, or the least-loaded rep overall.

        Returns ``None`` when nobody could be assigned; callers carry on with an
        unassigned project.
        """

        try:
            workloads = self.get_sales_rep_workloads(session)
            if not workloads:
                logger.warning("sales_rep_unavailable", extra={"project_id": project_id})
                observe_sales_assignment("auto", "no_candidates")
                return None

            selected = next(
                (item for item in workloads if item.utilization_percentage < FULL_UTILIZATION),
                workloads[0],
            )
            assigned_at = utcnow()
            updated = self.project_repository.set_assignment(session, project_id, selected.user_id, assigned_at)
            if updated == 0:
                session.rollback()
                logger.warning("sales_assignment_project_missing", extra={"project_id": project_id})
                observe_sales_assignment("auto", "not_found")
                return None
            session.commit()
        except Exception as exc:
            session.rollback()
            logger.error("sales_auto_assign_failed", extra={"project_id": project_id, "error": str(exc)})
            observe_sales_assignment("auto", "error")
            return None

        observe_sales_assignment("auto", "assigned")
        logger.info(
            "sales_rep_assigned",
            extra={
                "project_id": project_id,
                "sales_rep_id": selected.user_id,
                "utilization_percentage": selected.utilization_percentage,
            },
        )
        self._publish_assigned(project_id, selected.user_id, assigned_at, mode="auto")
        return selected.user

    def assign_sales_rep(self, session: Session, project_id: int, rep_id: int) -> bool:
        try:
            rep = self.user_repository.get(session, rep_id)
            if rep is None or not rep.is_active or not rep.is_sales_rep:
                logger.warning("sales_rep_invalid", extra={"project_id": project_id, "sales_rep_id": rep_id})
                observe_sales_assignment("manual", "invalid_rep")
                return False

            assigned_at = utcnow()
            updated = self.project_repository.set_assignment(session, project_id, rep_id, assigned_at)
            if updated == 0:
                session.rollback()
                observe_sales_assignment("manual", "not_found")
                return False
            session.commit()
        except Exception as exc:
            session.rollback()
            logger.error("sales_manual_assign_failed", extra={"project_id": project_id, "error": str(exc)})
            observe_sales_assignment("manual", "error")
            return False

        observe_sales_assignment("manual", "assigned")
        logger.info("sales_rep_assigned", extra={"project_id": project_id, "sales_rep_id": rep_id})
        self._publish_assigned(project_id, rep_id, assigned_at, mode="manual")
        return True

    def unassign_sales_rep(self, session: Session, project_id: int) -> bool:
        try:
            updated = self.project_repository.set_assignment(session, project_id, None, None)
            if updated == 0:
                session.rollback()
                observe_sales_assignment("unassign", "not_found")
                return False
            session.commit()
        except Exception as exc:
            session.rollback()
            logger.error("sales_unassign_failed", extra={"project_id": project_id, "error": str(exc)})
            observe_sales_assignment("unassign", "error")
            return False

        observe_sales_assignment("unassign", "unassigned")
        logger.info("sales_rep_unassigned", extra={"project_id": project_id})
        publish(
            {
                "event_type": "project.sales_rep_unassigned",
                "project_id": project_id,
                "occurred_at": utcnow().isoformat(),
            }
        )
        return True

    def get_sales_rep_metrics(
        self,
        session: Session,
        rep_id: int,
        period_days: int = 30,
        now: datetime | None = None,
    ) -> SalesRepMetricsRead:
        since = (now or utcnow()) - timedelta(days=period_days)
        projects = self.project_repository.list_for_rep_since(session, rep_id, since)

        total = len(projects)
        converted = sum(1 for project in projects if project.status == ProjectStatus.APPROVED.value)
        conversion_rate = utilization_percentage(converted, total) if total > 0 else 0

        response_seconds = [
            (_as_utc(project.assigned_at) - _as_utc(project.created_at)).total_seconds()
            for project in projects
            if project.assigned_at is not None
        ]
        avg_hours = 0.0
        if response_seconds:
            avg_hours = round(sum(response_seconds) / len(response_seconds) / 3600, 2)

        return SalesRepMetricsRead(
            sales_rep_id=rep_id,
            total_projects=total,
            converted_projects=converted,
            conversion_rate=conversion_rate,
            avg_response_time_hours=avg_hours,
            period_days=period_days,
        )

    @staticmethod
    def _publish_assigned(project_id: int, rep_id: int, assigned_at: datetime, *, mode: str) -> None:
        publish(
            {
                "event_type": "project.sales_rep_assigned",
                "project_id": project_id,
                "sales_rep_id": rep_id,
                "mode": mode,
                "assigned_at": assigned_at.isoformat(),
            }
        )


sales_assignment_service = SalesAssignmentService()

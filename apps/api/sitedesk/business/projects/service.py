from __future__ import annotations

import logging
from dataclasses import dataclass, field

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sitedesk.business.projects.models import Project, ProjectStatus
from sitedesk.business.projects.repository import ProjectRepository
from sitedesk.business.projects.schemas import InquiryCreate, ProjectRead
from sitedesk.business.sales.service import SalesAssignmentService, sales_assignment_service
from sitedesk.events import publish
from sitedesk.platform.sequences.errors import SequenceAllocationError
from sitedesk.platform.sequences.numbering import NumberingService


logger = logging.getLogger("sitedesk.projects")


@dataclass(slots=True)
class ProjectIntakeService:
    project_repository: ProjectRepository = field(default_factory=ProjectRepository)
    assignment_service: SalesAssignmentService = field(default_factory=lambda: sales_assignment_service)
    numbering_service: NumberingService | None = None

    def _numbering(self) -> NumberingService:
        if self.numbering_service is None:
            self.numbering_service = NumberingService()
        return self.numbering_service

    def create_inquiry(self, session: Session, payload: InquiryCreate, *, created_by_user_id: int | None) -> ProjectRead:
        """Mint an inquiry number, store the project, then try to hand it to a sales rep.

        A missing sales rep never fails the intake; the project stays unassigned.
        """

        try:
            inquiry_number = self._numbering().generate_inquiry_number(session)
            project = Project(
                title=payload.title,
                description=payload.description,
                inquiry_number=inquiry_number,
                status=ProjectStatus.INQUIRY.value,
                created_by_user_id=created_by_user_id,
            )
            self.project_repository.add(session, project)
            session.commit()
        except SequenceAllocationError as exc:
            session.rollback()
            logger.error("inquiry_number_unavailable", extra={"error": str(exc)})
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="could not allocate inquiry number")
        except IntegrityError as exc:
            session.rollback()
            logger.error("inquiry_number_conflict", extra={"error": str(exc)})
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="inquiry number already in use")

        project_id = project.id
        rep = self.assignment_service.auto_assign_sales_rep(session, project_id)
        if rep is None:
            logger.info("inquiry_left_unassigned", extra={"project_id": project_id})

        publish(
            {
                "event_type": "project.inquiry_created",
                "project_id": project_id,
                "inquiry_number": inquiry_number,
                "sales_rep_id": rep.id if rep is not None else None,
            }
        )
        session.refresh(project)
        return ProjectRead.model_validate(project)


project_intake_service = ProjectIntakeService()

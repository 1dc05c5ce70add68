from sitedesk.business.projects.models import OPEN_PROJECT_STATUSES, Project, ProjectStatus
from sitedesk.business.projects.repository import ProjectRepository

__all__ = [
    "OPEN_PROJECT_STATUSES",
    "Project",
    "ProjectStatus",
    "ProjectRepository",
]

from sitedesk.models.audit import SecurityAuditEvent
from sitedesk.business.projects.models import Project
from sitedesk.business.users.models import User
from sitedesk.platform.flags.models import FeatureFlag
from sitedesk.platform.sequences.models import Sequence

__all__ = [
	"SecurityAuditEvent",
	"Project",
	"User",
	"FeatureFlag",
	"Sequence",
]

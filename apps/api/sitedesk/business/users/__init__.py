from sitedesk.business.users.models import User
from sitedesk.business.users.repository import UserRepository

__all__ = [
    "User",
    "UserRepository",
]

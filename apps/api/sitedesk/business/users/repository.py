from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from sitedesk.business.users.models import User


class UserRepository:
    def get(self, session: Session, user_id: int) -> User | None:
        return session.get(User, user_id)

    def list_active_sales_reps(self, session: Session) -> list[User]:
        stmt = (
            select(User)
            .where(User.is_active.is_(True), User.is_sales_rep.is_(True))
            .order_by(User.id.asc())
        )
        return list(session.execute(stmt).scalars().all())

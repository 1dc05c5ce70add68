from __future__ import annotations

import logging
from typing import Any, Protocol

from sqlalchemy import func, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from sitedesk.core.config import Settings, get_settings
from sitedesk.metrics import observe_sequence_allocation
from sitedesk.otel import get_tracer
from sitedesk.platform.sequences.errors import SequenceAllocationError
from sitedesk.platform.sequences.models import Sequence


logger = logging.getLogger("sitedesk.sequences")
tracer = get_tracer("sitedesk.sequences")


class SequenceAllocator:
    """Issues strictly increasing integers per counter name.

    The counter row is advanced with ``UPDATE ... SET next_value = next_value + 1``
    before it is read back, so the write lock taken by the update serializes
    concurrent allocators until the enclosing transaction ends. A missing row is
    created with ``next_value = 2`` and the caller receives 1.

    Allocation commits in its own transaction, so a value handed out is never
    reused even when the caller's business transaction rolls back. A supplied
    ``session`` only selects the database unless ``join_transaction=True``.
    """

    def __init__(self, session_factory: sessionmaker[Session] | None = None, *, max_retries: int | None = None) -> None:
        self._session_factory = session_factory
        self._max_retries = max_retries

    def _factory(self, bind: Any = None) -> sessionmaker[Session]:
        if self._session_factory is not None:
            return self._session_factory
        if bind is not None:
            return sessionmaker(bind=bind, autocommit=False, autoflush=False)
        from sitedesk.core.database import SessionLocal

        return SessionLocal

    def _retries(self) -> int:
        if self._max_retries is not None:
            return max(1, self._max_retries)
        return max(1, get_settings().sequence_max_retries)

    def get_next_sequence(self, name: str, session: Session | None = None, *, join_transaction: bool = False) -> int:
        if join_transaction and session is None:
            raise ValueError("join_transaction requires a session")
        with tracer.start_as_current_span("sequence.allocate") as span:
            span.set_attribute("sequence.name", name)
            span.set_attribute("sequence.owned_transaction", not join_transaction)
            try:
                if join_transaction:
                    value = self._advance(session, name)
                else:
                    value = self._allocate_owned(name, session.get_bind() if session is not None else None)
            except SequenceAllocationError:
                observe_sequence_allocation(name, "failure")
                raise
            except SQLAlchemyError as exc:
                observe_sequence_allocation(name, "failure")
                logger.error("sequence_allocation_failed", extra={"sequence_name": name, "error": str(exc)})
                raise SequenceAllocationError(name) from exc
            span.set_attribute("sequence.value", value)

        observe_sequence_allocation(name, "success")
        logger.debug("sequence_allocated", extra={"sequence_name": name})
        return value

    def _allocate_owned(self, name: str, bind: Any = None) -> int:
        attempts = self._retries()
        factory = self._factory(bind)
        last_error: IntegrityError | None = None
        for attempt in range(1, attempts + 1):
            session = factory()
            try:
                with session.begin():
                    return self._advance(session, name)
            except IntegrityError as exc:
                # Another allocator created the row first; the next attempt takes the update path.
                last_error = exc
                logger.warning(
                    "sequence_create_conflict",
                    extra={"sequence_name": name, "error": f"attempt {attempt}/{attempts}"},
                )
            finally:
                session.close()

        logger.error("sequence_allocation_failed", extra={"sequence_name": name, "error": str(last_error)})
        raise SequenceAllocationError(name, f"Sequence '{name}' could not be created after {attempts} attempts") from last_error

    @staticmethod
    def _advance(session: Session, name: str) -> int:
        result = session.execute(
            update(Sequence)
            .where(Sequence.name == name)
            .values(next_value=Sequence.next_value + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            session.execute(insert(Sequence).values(name=name, next_value=2))
            session.flush()
            return 1

        advanced = session.execute(select(Sequence.next_value).where(Sequence.name == name)).scalar_one()
        return int(advanced) - 1


class NumberStrategy(Protocol):
    def next_value(self, session: Session, name: str, prefix: str) -> int:
        ...


class AtomicSequenceStrategy:
    """Production numbering: one committed allocator call per identifier."""

    def __init__(self, allocator: SequenceAllocator, *, join_transaction: bool = False) -> None:
        self.allocator = allocator
        self.join_transaction = join_transaction

    def next_value(self, session: Session, name: str, prefix: str) -> int:
        return self.allocator.get_next_sequence(name, session=session, join_transaction=self.join_transaction)


class CountBasedStrategy:
    """Counts existing identifiers that start with ``prefix`` and returns count + 1.

    Only safe for single-threaded tests and local development: two writers that
    count at the same time receive the same value.
    """

    def __init__(self, column: Any) -> None:
        self.column = column

    def next_value(self, session: Session, name: str, prefix: str) -> int:
        count = session.execute(select(func.count()).where(self.column.like(f"{prefix}%"))).scalar_one()
        return int(count) + 1


def build_inquiry_strategy(
    settings: Settings | None = None,
    allocator: SequenceAllocator | None = None,
    *,
    join_transaction: bool = False,
) -> NumberStrategy:
    settings = settings or get_settings()
    if settings.resolved_sequence_strategy() == "count":
        from sitedesk.business.projects.models import Project

        return CountBasedStrategy(Project.inquiry_number)
    return AtomicSequenceStrategy(allocator or SequenceAllocator(), join_transaction=join_transaction)

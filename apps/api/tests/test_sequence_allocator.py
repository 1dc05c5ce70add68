from __future__ import annotations

from collections.abc import Generator
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import sitedesk.models  # noqa: F401
from sitedesk.core.database import Base
from sitedesk.platform.sequences.errors import SequenceAllocationError
from sitedesk.platform.sequences.models import Sequence
from sitedesk.platform.sequences.service import SequenceAllocator


@pytest.fixture()
def session_factory() -> Generator[sessionmaker[Session], None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    try:
        yield SessionLocal
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


def test_first_allocation_creates_row_and_returns_one(session_factory: sessionmaker[Session]) -> None:
    allocator = SequenceAllocator(session_factory)

    assert allocator.get_next_sequence("invoice_number") == 1

    with session_factory() as session:
        row = session.scalar(select(Sequence).where(Sequence.name == "invoice_number"))
        assert row is not None
        assert row.next_value == 2


def test_sequential_allocations_strictly_increase(session_factory: sessionmaker[Session]) -> None:
    allocator = SequenceAllocator(session_factory)

    values = [allocator.get_next_sequence("quote_number") for _ in range(25)]

    assert values == list(range(1, 26))


def test_counters_are_independent_per_name(session_factory: sessionmaker[Session]) -> None:
    allocator = SequenceAllocator(session_factory)

    assert allocator.get_next_sequence("a") == 1
    assert allocator.get_next_sequence("a") == 2
    assert allocator.get_next_sequence("b") == 1
    assert allocator.get_next_sequence("a") == 3


def test_allocation_survives_caller_rollback(session_factory: sessionmaker[Session]) -> None:
    allocator = SequenceAllocator(session_factory)

    with session_factory() as session:
        assert allocator.get_next_sequence("change_order_code", session=session) == 1
        assert allocator.get_next_sequence("change_order_code", session=session) == 2
        session.rollback()

    with session_factory() as session:
        row = session.scalar(select(Sequence).where(Sequence.name == "change_order_code"))
        assert row is not None
        assert row.next_value == 3

    assert allocator.get_next_sequence("change_order_code") == 3


def test_owned_transaction_uses_the_callers_database(session_factory: sessionmaker[Session]) -> None:
    allocator = SequenceAllocator()

    with session_factory() as session:
        assert allocator.get_next_sequence("invoice_number", session=session) == 1
        session.rollback()

    with session_factory() as session:
        assert allocator.get_next_sequence("invoice_number", session=session) == 2
        row = session.scalar(select(Sequence).where(Sequence.name == "invoice_number"))
        assert row is not None
        assert row.next_value == 3


def test_joined_transaction_is_opt_in(session_factory: sessionmaker[Session]) -> None:
    allocator = SequenceAllocator(session_factory)
    assert allocator.get_next_sequence("change_order_code") == 1

    with session_factory() as session:
        assert allocator.get_next_sequence("change_order_code", session=session, join_transaction=True) == 2
        assert allocator.get_next_sequence("change_order_code", session=session, join_transaction=True) == 3
        session.rollback()

    with session_factory() as session:
        row = session.scalar(select(Sequence).where(Sequence.name == "change_order_code"))
        assert row is not None
        assert row.next_value == 2

    with session_factory() as session:
        assert allocator.get_next_sequence("change_order_code", session=session, join_transaction=True) == 2
        session.commit()

    assert allocator.get_next_sequence("change_order_code") == 3


def test_joined_transaction_requires_session(session_factory: sessionmaker[Session]) -> None:
    allocator = SequenceAllocator(session_factory)

    with pytest.raises(ValueError):
        allocator.get_next_sequence("invoice_number", join_transaction=True)


def test_storage_failure_raises_allocation_error() -> None:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    allocator = SequenceAllocator(SessionLocal)

    with pytest.raises(SequenceAllocationError) as exc_info:
        allocator.get_next_sequence("invoice_number")

    assert exc_info.value.name == "invoice_number"
    assert exc_info.value.__cause__ is not None


def test_supplied_session_failure_propagates() -> None:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    allocator = SequenceAllocator(SessionLocal)

    with SessionLocal() as session:
        with pytest.raises(SequenceAllocationError):
            allocator.get_next_sequence("invoice_number", session=session, join_transaction=True)


def test_creation_conflict_is_retried(session_factory: sessionmaker[Session], monkeypatch: pytest.MonkeyPatch) -> None:
    allocator = SequenceAllocator(session_factory, max_retries=3)
    original = SequenceAllocator._advance
    calls = {"count": 0}

    def flaky_advance(session: Session, name: str) -> int:
        calls["count"] += 1
        if calls["count"] == 1:
            raise IntegrityError("INSERT INTO sequences", {}, Exception("UNIQUE constraint failed: sequences.name"))
        return original(session, name)

    monkeypatch.setattr(SequenceAllocator, "_advance", staticmethod(flaky_advance))

    assert allocator.get_next_sequence("inquiry_number_2025") == 1
    assert calls["count"] == 2


def test_creation_conflict_gives_up_after_retry_budget(
    session_factory: sessionmaker[Session],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    allocator = SequenceAllocator(session_factory, max_retries=2)

    def always_conflicts(session: Session, name: str) -> int:
        raise IntegrityError("INSERT INTO sequences", {}, Exception("UNIQUE constraint failed: sequences.name"))

    monkeypatch.setattr(SequenceAllocator, "_advance", staticmethod(always_conflicts))

    with pytest.raises(SequenceAllocationError):
        allocator.get_next_sequence("inquiry_number_2025")


def test_concurrent_allocations_never_duplicate(tmp_path: Path) -> None:
    engine = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'sequences.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    allocator = SequenceAllocator(SessionLocal)

    workers = 8
    per_worker = 20

    def allocate_many(_: int) -> list[int]:
        return [allocator.get_next_sequence("x") for _ in range(per_worker)]

    try:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = [value for batch in pool.map(allocate_many, range(workers)) for value in batch]
    finally:
        engine.dispose()

    assert len(results) == workers * per_worker
    assert len(set(results)) == len(results)
    assert set(results) == set(range(1, workers * per_worker + 1))

from __future__ import annotations

from collections.abc import Callable, Generator

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import sitedesk.models  # noqa: F401
from sitedesk.core.database import Base
from sitedesk.platform.flags.models import FeatureFlag
from sitedesk.platform.flags.schemas import FeatureFlagUpsert
from sitedesk.platform.flags.service import DEFAULT_FLAGS, FeatureFlagService, FlagContext, rollout_bucket


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def service(clock: FakeClock) -> FeatureFlagService:
    return FeatureFlagService(ttl_seconds=30, clock=clock)


def _store(session: Session, **values) -> FeatureFlag:  # type: ignore[no-untyped-def]
    flag = FeatureFlag(**values)
    session.add(flag)
    session.commit()
    return flag


def test_missing_flag_is_false_and_absence_is_cached(db_session: Session, service: FeatureFlagService, clock: FakeClock) -> None:
    assert service.is_feature_enabled(db_session, "missing-key") is False
    assert service.is_feature_enabled(db_session, "missing-key", FlagContext()) is False

    _store(db_session, key="missing-key", enabled=True, rollout_strategy="boolean")
    clock.advance(29)
    assert service.is_feature_enabled(db_session, "missing-key") is False

    clock.advance(2)
    assert service.is_feature_enabled(db_session, "missing-key") is True


def test_disabled_flag_short_circuits_every_strategy(db_session: Session, service: FeatureFlagService) -> None:
    _store(db_session, key="off.percentage", enabled=False, rollout_strategy="percentage", percentage=100)
    _store(db_session, key="off.role", enabled=False, rollout_strategy="role", audience_roles=["owner"])

    assert service.is_feature_enabled(db_session, "off.percentage", FlagContext(user_id=1)) is False
    assert service.is_feature_enabled(db_session, "off.role", FlagContext(user_role="owner")) is False


def test_boolean_strategy(db_session: Session, service: FeatureFlagService) -> None:
    _store(db_session, key="prefetch.v2", enabled=True, rollout_strategy="boolean")

    assert service.is_feature_enabled(db_session, "prefetch.v2") is True


def test_percentage_bounds_hold_for_every_user(db_session: Session, service: FeatureFlagService) -> None:
    _store(db_session, key="zero", enabled=True, rollout_strategy="percentage", percentage=0)
    _store(db_session, key="hundred", enabled=True, rollout_strategy="percentage", percentage=100)

    for user_id in [None, *range(0, 300)]:
        context = FlagContext(user_id=user_id)
        assert service.is_feature_enabled(db_session, "zero", context) is False
        assert service.is_feature_enabled(db_session, "hundred", context) is True


def test_percentage_is_evaluated_per_caller_not_per_cache_entry(db_session: Session, service: FeatureFlagService) -> None:
    _store(db_session, key="dashboard.experimental", enabled=True, rollout_strategy="percentage", percentage=50)

    expected = {user_id: rollout_bucket(user_id, "dashboard.experimental") < 50 for user_id in range(1, 60)}
    assert set(expected.values()) == {True, False}

    for user_id, enabled in expected.items():
        assert service.is_feature_enabled(db_session, "dashboard.experimental", FlagContext(user_id=user_id)) is enabled


def test_percentage_without_value_stays_enabled(db_session: Session, service: FeatureFlagService) -> None:
    _store(db_session, key="no.percentage", enabled=True, rollout_strategy="percentage", percentage=None)

    for user_id in [None, *range(0, 50)]:
        assert service.is_feature_enabled(db_session, "no.percentage", FlagContext(user_id=user_id)) is True


def test_rollout_bucket_is_deterministic_and_in_range() -> None:
    assert rollout_bucket(42, "flag") == rollout_bucket(42, "flag")
    assert rollout_bucket(None, "flag") == rollout_bucket(0, "flag")
    assert all(0 <= rollout_bucket(user_id, "flag") < 100 for user_id in range(500))


def test_role_strategy(db_session: Session, service: FeatureFlagService) -> None:
    _store(
        db_session,
        key="feature.discovery",
        enabled=True,
        rollout_strategy="role",
        audience_roles=["owner", "project_manager"],
    )
    _store(db_session, key="no.audience", enabled=True, rollout_strategy="role", audience_roles=None)

    assert service.is_feature_enabled(db_session, "feature.discovery", FlagContext(user_role="owner")) is True
    assert service.is_feature_enabled(db_session, "feature.discovery", FlagContext(user_role="technician")) is False
    assert service.is_feature_enabled(db_session, "feature.discovery", FlagContext()) is False
    assert service.is_feature_enabled(db_session, "no.audience", FlagContext(user_role="owner")) is False


def test_upsert_invalidates_cached_entry(db_session: Session, service: FeatureFlagService) -> None:
    assert service.is_feature_enabled(db_session, "beta.reports") is False

    created = service.upsert_flag(db_session, FeatureFlagUpsert(key="beta.reports", enabled=True))
    assert created.rollout_strategy == "boolean"
    assert service.is_feature_enabled(db_session, "beta.reports") is True

    service.upsert_flag(db_session, FeatureFlagUpsert(key="beta.reports", enabled=False))
    assert service.is_feature_enabled(db_session, "beta.reports") is False


def test_upsert_keeps_unset_fields_and_normalizes_strategy(db_session: Session, service: FeatureFlagService) -> None:
    service.upsert_flag(
        db_session,
        FeatureFlagUpsert(
            key="crew.calendar",
            enabled=True,
            description="Crew calendar",
            rollout_strategy="percentage",
            percentage=25,
            metadata={"owner": "ops"},
        ),
    )

    updated = service.upsert_flag(db_session, FeatureFlagUpsert(key="crew.calendar", description="Crew calendar v2"))
    assert updated.enabled is True
    assert updated.rollout_strategy == "percentage"
    assert updated.percentage == 25
    assert updated.metadata == {"owner": "ops"}
    assert updated.description == "Crew calendar v2"

    normalized = service.upsert_flag(db_session, FeatureFlagUpsert(key="crew.calendar", rollout_strategy="gradual"))
    assert normalized.rollout_strategy == "boolean"


def test_list_flags_sorted_by_key(db_session: Session, service: FeatureFlagService) -> None:
    service.upsert_flag(db_session, FeatureFlagUpsert(key="b.flag", enabled=True))
    service.upsert_flag(db_session, FeatureFlagUpsert(key="a.flag", enabled=False))

    assert [flag.key for flag in service.list_flags(db_session)] == ["a.flag", "b.flag"]


def test_seed_default_flags_is_idempotent(db_session: Session, service: FeatureFlagService) -> None:
    service.upsert_flag(db_session, FeatureFlagUpsert(key="prefetch.v2", enabled=False))

    assert service.seed_default_flags(db_session) == len(DEFAULT_FLAGS) - 1
    assert service.seed_default_flags(db_session) == 0

    prefetch = db_session.scalar(select(FeatureFlag).where(FeatureFlag.key == "prefetch.v2"))
    assert prefetch is not None
    assert prefetch.enabled is False

    discovery = db_session.scalar(select(FeatureFlag).where(FeatureFlag.key == "feature.discovery"))
    assert discovery is not None
    assert discovery.rollout_strategy == "role"
    assert discovery.audience_roles == ["owner", "project_manager", "office_manager"]


def test_invalidate_and_clear_cache(db_session: Session, service: FeatureFlagService) -> None:
    assert service.is_feature_enabled(db_session, "late.flag") is False
    _store(db_session, key="late.flag", enabled=True, rollout_strategy="boolean")
    assert service.is_feature_enabled(db_session, "late.flag") is False

    service.invalidate("late.flag")
    assert service.is_feature_enabled(db_session, "late.flag") is True

    db_session.execute(select(FeatureFlag)).scalars().first().enabled = False  # type: ignore[union-attr]
    db_session.commit()
    service.clear_cache()
    assert service.is_feature_enabled(db_session, "late.flag") is False


class _InterleavedSession:
    """Runs ``on_read`` after each query returns, before the caller consumes the result."""

    def __init__(self, session: Session, on_read: Callable[[], None]) -> None:
        self._session = session
        self._on_read = on_read

    def execute(self, statement):  # type: ignore[no-untyped-def]
        frozen = self._session.execute(statement).freeze()
        self._on_read()
        return frozen()


def test_invalidation_during_read_does_not_cache_stale_snapshot(db_session: Session, service: FeatureFlagService) -> None:
    _store(db_session, key="billing.export", enabled=True, rollout_strategy="boolean")

    racing = _InterleavedSession(db_session, lambda: service.invalidate("billing.export"))
    assert service.is_feature_enabled(racing, "billing.export") is True  # type: ignore[arg-type]

    db_session.execute(select(FeatureFlag).where(FeatureFlag.key == "billing.export")).scalar_one().enabled = False
    db_session.commit()

    assert service.is_feature_enabled(db_session, "billing.export") is False


def test_clear_cache_during_read_does_not_cache_stale_snapshot(db_session: Session, service: FeatureFlagService) -> None:
    _store(db_session, key="billing.export", enabled=True, rollout_strategy="boolean")

    racing = _InterleavedSession(db_session, service.clear_cache)
    assert service.is_feature_enabled(racing, "billing.export") is True  # type: ignore[arg-type]

    db_session.execute(select(FeatureFlag).where(FeatureFlag.key == "billing.export")).scalar_one().enabled = False
    db_session.commit()

    assert service.is_feature_enabled(db_session, "billing.export") is False

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from sitedesk.core.config import get_settings
from sitedesk.metrics import observe_feature_flag_cache_hit, observe_feature_flag_cache_miss
from sitedesk.platform.flags.models import FeatureFlag
from sitedesk.platform.flags.schemas import ROLLOUT_STRATEGIES, FeatureFlagRead, FeatureFlagUpsert


logger = logging.getLogger("sitedesk.flags")


@dataclass(slots=True, frozen=True)
class FlagContext:
    user_id: int | None = None
    user_role: str | None = None


@dataclass(slots=True, frozen=True)
class FlagSnapshot:
    key: str
    enabled: bool
    rollout_strategy: str
    percentage: int | None
    audience_roles: tuple[str, ...] | None

    @classmethod
    def from_model(cls, flag: FeatureFlag) -> FlagSnapshot:
        roles = tuple(flag.audience_roles) if flag.audience_roles is not None else None
        return cls(
            key=flag.key,
            enabled=bool(flag.enabled),
            rollout_strategy=flag.rollout_strategy,
            percentage=flag.percentage,
            audience_roles=roles,
        )


@dataclass(slots=True)
class _CacheEntry:
    snapshot: FlagSnapshot | None
    expires_at: float


DEFAULT_FLAGS: tuple[FeatureFlagUpsert, ...] = (
    FeatureFlagUpsert(
        key="prefetch.v2",
        enabled=True,
        description="Enable advanced panel prefetch logic",
        rollout_strategy="boolean",
    ),
    FeatureFlagUpsert(
        key="feature.discovery",
        enabled=True,
        description="Enable Feature Discovery UI module",
        rollout_strategy="role",
        audience_roles=["owner", "project_manager", "office_manager"],
    ),
    FeatureFlagUpsert(
        key="dashboard.experimental",
        enabled=False,
        description="Show experimental dashboard panels",
        rollout_strategy="percentage",
        percentage=10,
    ),
)


def rollout_bucket(user_id: int | None, key: str) -> int:
    """Deterministic bucket in [0, 100) for a user and flag key."""

    value = 0
    for char in f"{user_id if user_id is not None else 0}-{key}":
        value = (value * 31 + ord(char)) % 2**32
    return value % 100


def normalize_strategy(value: str | None) -> str:
    return value if value in ROLLOUT_STRATEGIES else "boolean"


class FeatureFlagService:
    """Evaluates feature flags against a short-lived per-process cache.

    The cache holds the flag definition (or the fact that no flag exists) per
    key; the rollout strategy is applied on every call so that percentage and
    role results depend on the caller, not on whoever populated the entry.
    """

    def __init__(self, ttl_seconds: float | None = None, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._cache: dict[str, _CacheEntry] = {}
        self._generations: dict[str, int] = {}
        self._epoch = 0
        self._lock = threading.Lock()

    @property
    def ttl_seconds(self) -> float:
        if self._ttl_seconds is not None:
            return self._ttl_seconds
        return get_settings().feature_flag_cache_ttl_seconds

    def is_feature_enabled(self, session: Session, key: str, context: FlagContext | None = None) -> bool:
        snapshot = self._load(session, key)
        if snapshot is None:
            return False
        return self.evaluate(snapshot, context or FlagContext())

    @staticmethod
    def evaluate(snapshot: FlagSnapshot, context: FlagContext) -> bool:
        if not snapshot.enabled:
            return False
        if snapshot.rollout_strategy == "percentage" and snapshot.percentage is not None:
            return rollout_bucket(context.user_id, snapshot.key) < snapshot.percentage
        if snapshot.rollout_strategy == "role":
            if not context.user_role or not snapshot.audience_roles:
                return False
            return context.user_role in snapshot.audience_roles
        return True

    def _load(self, session: Session, key: str) -> FlagSnapshot | None:
        now = self._clock()
        with self._lock:
            entry = self._cache.get(key)
            if entry is not None and now < entry.expires_at:
                observe_feature_flag_cache_hit()
                return entry.snapshot
            generation = self._generation(key)

        observe_feature_flag_cache_miss()
        flag = session.execute(select(FeatureFlag).where(FeatureFlag.key == key)).scalar_one_or_none()
        snapshot = FlagSnapshot.from_model(flag) if flag is not None else None
        with self._lock:
            # An invalidation that landed during the read makes this snapshot stale.
            if self._generation(key) == generation:
                self._cache[key] = _CacheEntry(snapshot=snapshot, expires_at=self._clock() + self.ttl_seconds)
        return snapshot

    def _generation(self, key: str) -> tuple[int, int]:
        return self._epoch, self._generations.get(key, 0)

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._cache.pop(key, None)
            self._generations[key] = self._generations.get(key, 0) + 1

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()
            self._generations.clear()
            self._epoch += 1

    def list_flags(self, session: Session) -> list[FeatureFlagRead]:
        rows = session.execute(select(FeatureFlag).order_by(FeatureFlag.key.asc())).scalars().all()
        return [self._to_read(row) for row in rows]

    def upsert_flag(self, session: Session, payload: FeatureFlagUpsert) -> FeatureFlagRead:
        flag = session.execute(select(FeatureFlag).where(FeatureFlag.key == payload.key)).scalar_one_or_none()
        if flag is None:
            flag = FeatureFlag(
                key=payload.key,
                enabled=payload.enabled if payload.enabled is not None else False,
                description=payload.description,
                rollout_strategy=normalize_strategy(payload.rollout_strategy),
                percentage=payload.percentage,
                audience_roles=payload.audience_roles,
                flag_metadata=payload.metadata,
            )
            session.add(flag)
        else:
            if payload.enabled is not None:
                flag.enabled = payload.enabled
            if payload.description is not None:
                flag.description = payload.description
            if payload.rollout_strategy is not None:
                flag.rollout_strategy = normalize_strategy(payload.rollout_strategy)
            if payload.percentage is not None:
                flag.percentage = payload.percentage
            if payload.audience_roles is not None:
                flag.audience_roles = payload.audience_roles
            if payload.metadata is not None:
                flag.flag_metadata = payload.metadata

        session.commit()
        session.refresh(flag)
        self.invalidate(payload.key)
        logger.info("feature_flag_upserted", extra={"flag_key": payload.key})
        return self._to_read(flag)

    def seed_default_flags(self, session: Session) -> int:
        """Create the default flags that do not exist yet. Existing flags are left untouched."""

        created = 0
        for default in DEFAULT_FLAGS:
            exists = session.execute(select(FeatureFlag.id).where(FeatureFlag.key == default.key)).first()
            if exists is not None:
                continue
            try:
                self.upsert_flag(session, default)
                created += 1
            except Exception as exc:
                session.rollback()
                logger.warning("feature_flag_seed_failed", extra={"flag_key": default.key, "error": str(exc)})
        return created

    @staticmethod
    def _to_read(flag: FeatureFlag) -> FeatureFlagRead:
        return FeatureFlagRead(
            id=flag.id,
            key=flag.key,
            enabled=flag.enabled,
            description=flag.description,
            rollout_strategy=flag.rollout_strategy,
            percentage=flag.percentage,
            audience_roles=flag.audience_roles,
            metadata=flag.flag_metadata,
            created_at=flag.created_at,
            updated_at=flag.updated_at,
        )


_FLAG_SERVICE: FeatureFlagService | None = None
_FLAG_LOCK = threading.Lock()


def get_feature_flag_service() -> FeatureFlagService:
    global _FLAG_SERVICE
    with _FLAG_LOCK:
        if _FLAG_SERVICE is None:
            _FLAG_SERVICE = FeatureFlagService()
        return _FLAG_SERVICE


def set_feature_flag_service(service: FeatureFlagService | None) -> None:
    global _FLAG_SERVICE
    with _FLAG_LOCK:
        _FLAG_SERVICE = service

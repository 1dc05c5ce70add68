from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


RolloutStrategy = Literal["boolean", "percentage", "role"]
ROLLOUT_STRATEGIES: tuple[str, ...] = ("boolean", "percentage", "role")


class FeatureFlagRead(BaseModel):
    id: int
    key: str
    enabled: bool
    description: str | None
    rollout_strategy: RolloutStrategy | str
    percentage: int | None
    audience_roles: list[str] | None
    metadata: dict[str, Any] | None
    created_at: datetime
    updated_at: datetime


class FeatureFlagUpsert(BaseModel):
    key: str = Field(min_length=1, max_length=100)
    enabled: bool | None = None
    description: str | None = Field(default=None, max_length=255)
    rollout_strategy: str | None = None
    percentage: int | None = Field(default=None, ge=0, le=100)
    audience_roles: list[str] | None = None
    metadata: dict[str, Any] | None = None


class FeatureFlagEvaluation(BaseModel):
    key: str
    enabled: bool

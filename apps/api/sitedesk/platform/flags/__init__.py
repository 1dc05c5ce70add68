from sitedesk.platform.flags.models import FeatureFlag
from sitedesk.platform.flags.schemas import FeatureFlagEvaluation, FeatureFlagRead, FeatureFlagUpsert
from sitedesk.platform.flags.service import (
    DEFAULT_FLAGS,
    FeatureFlagService,
    FlagContext,
    FlagSnapshot,
    get_feature_flag_service,
    rollout_bucket,
    set_feature_flag_service,
)

__all__ = [
    "FeatureFlag",
    "FeatureFlagEvaluation",
    "FeatureFlagRead",
    "FeatureFlagUpsert",
    "DEFAULT_FLAGS",
    "FeatureFlagService",
    "FlagContext",
    "FlagSnapshot",
    "get_feature_flag_service",
    "rollout_bucket",
    "set_feature_flag_service",
]

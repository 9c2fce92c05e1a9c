"""Entitlement models, quota defaults, and limit resolution."""

from .catalog import (
    DEFAULT_DAILY_LIMITS,
    FALLBACK_DAILY_LIMIT,
    PLAN_GRANTS,
    PlanGrantDefinition,
    default_daily_limit,
    get_plan_grants,
    limit_feature_key,
    normalize_metric,
)
from .cache import InMemoryLimitCache, LimitCache
from .models import EntitlementCheck, EntitlementGrant, PlanStatus, PlanTier
from .service import EntitlementRepository, EntitlementResolver

__all__ = [
    "DEFAULT_DAILY_LIMITS",
    "FALLBACK_DAILY_LIMIT",
    "PLAN_GRANTS",
    "PlanGrantDefinition",
    "default_daily_limit",
    "get_plan_grants",
    "limit_feature_key",
    "normalize_metric",
    "InMemoryLimitCache",
    "LimitCache",
    "EntitlementCheck",
    "EntitlementGrant",
    "PlanStatus",
    "PlanTier",
    "EntitlementRepository",
    "EntitlementResolver",
]

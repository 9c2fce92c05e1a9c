"""Static catalog of default daily quotas and plan grant bundles."""
from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, List, Mapping, Tuple

from .models import EntitlementGrant, PlanTier

FALLBACK_DAILY_LIMIT = 5

DEFAULT_DAILY_LIMITS: Mapping[str, int] = MappingProxyType(
    {
        "ai_shortlist": 3,
        "video_analysis": 2,
        "coach_runs": 2,
        "bias_runs": 2,
        "marketing_runs": 3,
    }
)


def normalize_metric(metric: str) -> str:
    """Return the canonical form of a usage metric name."""

    normalized = (metric or "").strip().lower()
    if not normalized:
        raise ValueError("metric must not be empty")
    return normalized


def limit_feature_key(metric: str) -> str:
    """Return the entitlement key holding the daily limit override for ``metric``."""

    return f"limits_{normalize_metric(metric)}_per_day"


def default_daily_limit(metric: str) -> int:
    """Return the static default quota for ``metric``."""

    return DEFAULT_DAILY_LIMITS.get(normalize_metric(metric), FALLBACK_DAILY_LIMIT)


@dataclass(frozen=True)
class PlanGrantDefinition:
    """Describes the feature flags and quotas provisioned for a plan tier."""

    tier: PlanTier
    display_name: str
    features: Tuple[str, ...]
    daily_limits: Mapping[str, int]
    yearly_limits: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))

    def to_grants(self, organization_id: str) -> List[EntitlementGrant]:
        grants: List[EntitlementGrant] = [
            EntitlementGrant(organization_id=organization_id, feature=feature, enabled=True)
            for feature in self.features
        ]
        for metric, limit in self.daily_limits.items():
            grants.append(
                EntitlementGrant(
                    organization_id=organization_id,
                    feature=limit_feature_key(metric),
                    enabled=True,
                    value=str(limit),
                )
            )
        for metric, limit in self.yearly_limits.items():
            grants.append(
                EntitlementGrant(
                    organization_id=organization_id,
                    feature=f"limits_{metric}_per_year",
                    enabled=True,
                    value=str(limit),
                )
            )
        return grants


GROWTH_FEATURES: Tuple[str, ...] = (
    "feature_copilot",
    "feature_predictive",
    "feature_gamification",
    "feature_assessments",
    "feature_culture_dna",
    "feature_video_summary",
    "feature_marketing_assets",
    "feature_role_designer",
    "feature_retention",
    "feature_team_optimizer",
    "feature_share_shortlist",
    "feature_role_dna",
    "feature_interview_kits",
    "feature_decision_room",
    "feature_question_bank_admin",
    "feature_hiring_autopilot",
)

PLAN_GRANTS: Dict[PlanTier, PlanGrantDefinition] = {
    PlanTier.GROWTH: PlanGrantDefinition(
        tier=PlanTier.GROWTH,
        display_name="Growth",
        features=GROWTH_FEATURES,
        daily_limits=MappingProxyType(
            {
                "ai_shortlist": 50,
                "video_analysis": 25,
                "coach_runs": 25,
                "bias_runs": 25,
                "marketing_runs": 25,
                "copilot": 100,
            }
        ),
        yearly_limits=MappingProxyType({"hires": 25}),
    ),
}


def get_plan_grants(tier: PlanTier) -> PlanGrantDefinition:
    """Return the grant bundle for a tier, raising if none is defined."""

    try:
        return PLAN_GRANTS[tier]
    except KeyError as exc:
        raise KeyError(f"No grant bundle defined for plan tier: {tier}") from exc

"""Feature gating utilities coordinating pilot locks, entitlements, and quotas."""
from .access import AccessGate, GateDecision
from .enforcement import require_entitlement, require_unlocked
from .exceptions import FeatureGateError
from .quota import consume_quota, usage_snapshot

__all__ = [
    "AccessGate",
    "FeatureGateError",
    "GateDecision",
    "consume_quota",
    "require_entitlement",
    "require_unlocked",
    "usage_snapshot",
]

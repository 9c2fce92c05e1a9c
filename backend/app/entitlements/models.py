"""Domain models for plan status, entitlement grants, and quota limits."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PlanTier(str, Enum):
    """Commercial tiers an organization can be provisioned on."""

    STARTER = "starter"
    GROWTH = "growth"
    SCALE = "scale"


class PlanStatus(str, Enum):
    """Lifecycle state of an organization's plan."""

    PILOT = "pilot"
    ACTIVE = "active"
    LOCKED = "locked"


class EntitlementGrant(BaseModel):
    """Organization specific override for a feature flag or a daily limit."""

    organization_id: str
    feature: str
    enabled: bool = True
    value: Optional[str] = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("feature")
    @classmethod
    def _validate_feature(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("feature must not be empty")
        return normalized

    @property
    def numeric_value(self) -> Optional[int]:
        """Return the grant value as an integer, or None when it is not numeric."""

        if self.value is None:
            return None
        try:
            parsed = int(str(self.value).strip())
        except ValueError:
            return None
        return parsed if parsed >= 0 else None


class EntitlementCheck(BaseModel):
    """Result of checking whether an organization holds a feature entitlement."""

    feature: str
    enabled: bool = False
    value: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_grant(cls, feature: str, grant: Optional[EntitlementGrant]) -> "EntitlementCheck":
        if grant is None:
            return cls(feature=feature)
        return cls(feature=feature, enabled=grant.enabled, value=grant.value)

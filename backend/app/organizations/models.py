"""Typed representations of organizations and their plan lifecycle."""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..entitlements.models import PlanStatus, PlanTier


class Organization(BaseModel):
    """Persistent organization record carrying its pilot window."""

    id: str
    name: str = ""
    plan_tier: Optional[PlanTier] = None
    plan_status: str = Field(
        description="Raw persisted status. Validated when the status is resolved.",
    )
    pilot_start_at: Optional[datetime] = None
    pilot_end_at: Optional[datetime] = None
    converted_at: Optional[datetime] = None
    billing_subscription_id: Optional[str] = Field(
        default=None,
        description="Identifier of the paid subscription once the pilot converts.",
    )

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class OrgPilotStatus(BaseModel):
    """Plan status computed from an organization record at a single instant."""

    organization_id: str
    plan_tier: Optional[PlanTier] = None
    plan_status: PlanStatus
    pilot_start_at: Optional[datetime] = None
    pilot_end_at: Optional[datetime] = None
    converted_at: Optional[datetime] = None
    days_remaining: Optional[int] = None
    hours_remaining: Optional[int] = None
    is_expired: bool = False

    model_config = ConfigDict(frozen=True)


class LockOutcome(BaseModel):
    """Result of an expired pilot lock attempt."""

    organization_id: str
    transitioned: bool

    model_config = ConfigDict(frozen=True)


class LifecycleAction(str, Enum):
    """Transitions recorded in the plan lifecycle audit trail."""

    PILOT_STARTED = "pilot_started"
    PILOT_LOCKED = "pilot_locked"
    CONVERTED = "converted"


class LifecycleEvent(BaseModel):
    """Structured payload emitted whenever an organization changes plan status."""

    organization_id: str
    action: LifecycleAction
    status_before: Optional[PlanStatus] = None
    status_after: PlanStatus
    timestamp: datetime
    metadata: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

"""API schemas for organization access, usage, and lifecycle endpoints."""
from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..entitlements.models import EntitlementCheck, PlanTier
from ..feature_gates import GateDecision
from ..organizations.models import Organization, OrgPilotStatus
from ..usage.models import UsageReservation, UsageSnapshot


class PilotStatusResponse(BaseModel):
    plan_tier: Optional[PlanTier] = Field(alias="planTier", default=None)
    plan_status: str = Field(alias="planStatus")
    pilot_start_at: Optional[datetime] = Field(alias="pilotStartAt", default=None)
    pilot_end_at: Optional[datetime] = Field(alias="pilotEndAt", default=None)
    days_remaining: Optional[int] = Field(alias="daysRemaining", default=None)
    hours_remaining: Optional[int] = Field(alias="hoursRemaining", default=None)
    is_expired: bool = Field(alias="isExpired", default=False)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_status(cls, pilot: OrgPilotStatus) -> "PilotStatusResponse":
        return cls(
            plan_tier=pilot.plan_tier,
            plan_status=pilot.plan_status.value,
            pilot_start_at=pilot.pilot_start_at,
            pilot_end_at=pilot.pilot_end_at,
            days_remaining=pilot.days_remaining,
            hours_remaining=pilot.hours_remaining,
            is_expired=pilot.is_expired,
        )


class GateDecisionResponse(BaseModel):
    status: str
    is_locked: bool = Field(alias="isLocked")
    is_pilot: bool = Field(alias="isPilot")
    is_active: bool = Field(alias="isActive")
    redirect_to: Optional[str] = Field(alias="redirectTo", default=None)
    pilot: Optional[PilotStatusResponse] = None

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_decision(cls, decision: GateDecision) -> "GateDecisionResponse":
        return cls(
            status=decision.status,
            is_locked=decision.is_locked,
            is_pilot=decision.is_pilot,
            is_active=decision.is_active,
            redirect_to=decision.redirect_to,
            pilot=PilotStatusResponse.from_status(decision.pilot) if decision.pilot else None,
        )


class UsageReservationResponse(BaseModel):
    metric: str
    day: date
    accepted: bool
    new_count: int = Field(alias="newCount")
    limit: int
    remaining: int

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_reservation(cls, reservation: UsageReservation) -> "UsageReservationResponse":
        return cls(
            metric=reservation.metric,
            day=reservation.day,
            accepted=reservation.accepted,
            new_count=reservation.new_count,
            limit=reservation.limit,
            remaining=reservation.remaining,
        )


class UsageSnapshotResponse(BaseModel):
    metric: str
    available: bool = True
    day: Optional[date] = None
    used: Optional[int] = None
    limit: Optional[int] = None
    remaining: Optional[int] = None
    is_low: bool = Field(alias="isLow", default=False)
    is_empty: bool = Field(alias="isEmpty", default=False)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_snapshot(cls, metric: str, snapshot: Optional[UsageSnapshot]) -> "UsageSnapshotResponse":
        if snapshot is None:
            return cls(metric=metric, available=False)
        return cls(
            metric=snapshot.metric,
            day=snapshot.day,
            used=snapshot.used,
            limit=snapshot.limit,
            remaining=snapshot.remaining,
            is_low=snapshot.is_low,
            is_empty=snapshot.is_empty,
        )


class EntitlementCheckResponse(BaseModel):
    feature: str
    enabled: bool
    value: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_check(cls, check: EntitlementCheck) -> "EntitlementCheckResponse":
        return cls(feature=check.feature, enabled=check.enabled, value=check.value)


class PilotActivationRequest(BaseModel):
    tier: PlanTier = PlanTier.GROWTH
    pilot_end: Optional[datetime] = Field(alias="pilotEnd", default=None)

    model_config = ConfigDict(populate_by_name=True)


class ConversionRequest(BaseModel):
    subscription_id: str = Field(alias="subscriptionId", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class OrganizationPlanResponse(BaseModel):
    id: str
    plan_tier: Optional[PlanTier] = Field(alias="planTier", default=None)
    plan_status: str = Field(alias="planStatus")
    pilot_start_at: Optional[datetime] = Field(alias="pilotStartAt", default=None)
    pilot_end_at: Optional[datetime] = Field(alias="pilotEndAt", default=None)
    converted_at: Optional[datetime] = Field(alias="convertedAt", default=None)
    billing_subscription_id: Optional[str] = Field(alias="billingSubscriptionId", default=None)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_organization(cls, organization: Organization) -> "OrganizationPlanResponse":
        return cls(
            id=organization.id,
            plan_tier=organization.plan_tier,
            plan_status=organization.plan_status,
            pilot_start_at=organization.pilot_start_at,
            pilot_end_at=organization.pilot_end_at,
            converted_at=organization.converted_at,
            billing_subscription_id=organization.billing_subscription_id,
        )

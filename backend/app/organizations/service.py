"""Service layer orchestrating the organization pilot lifecycle."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol, Sequence

from ..entitlements.catalog import get_plan_grants
from ..entitlements.models import EntitlementGrant, PlanStatus, PlanTier
from .models import LifecycleAction, LifecycleEvent, LockOutcome, Organization
from .status import parse_plan_status

logger = logging.getLogger("organizations.lifecycle")


class OrganizationRepository(Protocol):
    """Persistence layer for organization plan state.

    Every mutating method is a single conditional write scoped to one
    organization, so concurrent callers cannot both apply the same transition.
    """

    def get_organization(self, organization_id: str) -> Optional[Organization]:
        ...

    def lock_expired_pilot(
        self,
        organization_id: str,
        *,
        now: datetime,
        default_pilot_end: Optional[datetime],
    ) -> bool:
        """Set ``locked`` where status is ``pilot`` and the pilot end is before ``now``."""

    def start_pilot(
        self,
        organization_id: str,
        *,
        tier: PlanTier,
        pilot_start_at: datetime,
        pilot_end_at: datetime,
    ) -> Optional[Organization]:
        """Restart the pilot window where status is ``pilot``; None when the guard fails."""

    def mark_converted(
        self,
        organization_id: str,
        *,
        subscription_id: str,
        converted_at: datetime,
    ) -> Optional[Organization]:
        """Set ``active`` where status is ``pilot`` or ``locked``; None when the guard fails."""


class GrantWriter(Protocol):
    """Writes entitlement grants provisioned with a plan."""

    def upsert_grants(self, grants: Sequence[EntitlementGrant]) -> Sequence[EntitlementGrant]:
        ...


class LifecycleEventLogger(Protocol):
    """Interface for emitting lifecycle audit events."""

    def log(self, event: LifecycleEvent) -> None:
        ...


class LimitInvalidator(Protocol):
    """Interface for dropping cached quota limits after grants change."""

    def invalidate_organization(self, organization_id: str) -> None:
        ...


def _current_time(clock: Optional[Callable[[], datetime]]) -> datetime:
    if clock is None:
        return datetime.now(timezone.utc)
    value = clock()
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class PilotLifecycleService:
    """Applies plan status transitions for organizations."""

    repository: OrganizationRepository
    grant_writer: GrantWriter
    event_logger: LifecycleEventLogger
    limit_invalidator: LimitInvalidator
    default_pilot_end: datetime
    clock: Optional[Callable[[], datetime]] = None

    def lock_if_expired(self, organization_id: str) -> LockOutcome:
        """Lock the organization if its pilot window has elapsed.

        Organizations that are already locked or active are left untouched
        without being read. Among concurrent callers for the same expired
        pilot exactly one observes ``transitioned=True``.
        """

        now = _current_time(self.clock)
        transitioned = self.repository.lock_expired_pilot(
            organization_id,
            now=now,
            default_pilot_end=self.default_pilot_end,
        )
        if transitioned:
            logger.warning("Pilot expired, organization locked org=%s", organization_id)
            self.event_logger.log(
                LifecycleEvent(
                    organization_id=organization_id,
                    action=LifecycleAction.PILOT_LOCKED,
                    status_before=PlanStatus.PILOT,
                    status_after=PlanStatus.LOCKED,
                    timestamp=now,
                )
            )
        return LockOutcome(organization_id=organization_id, transitioned=transitioned)

    def activate_pilot(
        self,
        organization_id: str,
        tier: PlanTier = PlanTier.GROWTH,
        *,
        pilot_end: Optional[datetime] = None,
    ) -> Organization:
        """Start the pilot window and provision the tier's grants."""

        grant_bundle = get_plan_grants(tier)
        now = _current_time(self.clock)
        end = pilot_end or self.default_pilot_end
        if end.tzinfo is None:
            end = end.replace(tzinfo=timezone.utc)
        if end <= now:
            raise ValueError("pilot_end must be in the future")

        updated = self.repository.start_pilot(
            organization_id,
            tier=tier,
            pilot_start_at=now,
            pilot_end_at=end,
        )
        if updated is None:
            current = self._require_organization(organization_id)
            raise ValueError(
                f"Cannot start a pilot for organization in status {parse_plan_status(current).value!r}"
            )

        self.grant_writer.upsert_grants(grant_bundle.to_grants(organization_id))
        self.limit_invalidator.invalidate_organization(organization_id)
        self.event_logger.log(
            LifecycleEvent(
                organization_id=organization_id,
                action=LifecycleAction.PILOT_STARTED,
                status_before=PlanStatus.PILOT,
                status_after=PlanStatus.PILOT,
                timestamp=now,
                metadata={"tier": tier.value, "pilot_end_at": end.isoformat()},
            )
        )
        return updated

    def convert_to_paid(self, organization_id: str, subscription_id: str) -> Organization:
        """Mark the organization active after billing confirms a subscription."""

        if not subscription_id.strip():
            raise ValueError("subscription_id must not be empty")

        current = self._require_organization(organization_id)
        status_before = parse_plan_status(current)
        if status_before == PlanStatus.ACTIVE:
            return current

        now = _current_time(self.clock)
        updated = self.repository.mark_converted(
            organization_id,
            subscription_id=subscription_id,
            converted_at=now,
        )
        if updated is None:
            # Lost a race with another conversion of the same organization.
            return self._require_organization(organization_id)

        self.limit_invalidator.invalidate_organization(organization_id)
        self.event_logger.log(
            LifecycleEvent(
                organization_id=organization_id,
                action=LifecycleAction.CONVERTED,
                status_before=status_before,
                status_after=PlanStatus.ACTIVE,
                timestamp=now,
                metadata={"subscription_id": subscription_id},
            )
        )
        return updated

    def _require_organization(self, organization_id: str) -> Organization:
        organization = self.repository.get_organization(organization_id)
        if organization is None:
            raise LookupError("Organization not found")
        return organization

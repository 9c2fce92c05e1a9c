"""Pure computation of an organization's plan status."""
from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..entitlements.models import PlanStatus
from ..errors import DataIntegrityError
from .models import Organization, OrgPilotStatus

_DAY = timedelta(days=1)
_HOUR = timedelta(hours=1)


def parse_plan_status(organization: Organization) -> PlanStatus:
    """Return the organization's status, rejecting values outside the known set."""

    try:
        return PlanStatus(organization.plan_status)
    except ValueError as exc:
        raise DataIntegrityError(
            f"Organization {organization.id} has unknown plan status {organization.plan_status!r}",
            organization_id=organization.id,
            value=organization.plan_status,
        ) from exc


def effective_pilot_end(organization: Organization, default_pilot_end: Optional[datetime]) -> Optional[datetime]:
    """Return the stored pilot end, or the deployment wide default when none is stored."""

    end = organization.pilot_end_at or default_pilot_end
    if end is not None and end.tzinfo is None:
        end = end.replace(tzinfo=timezone.utc)
    return end


def _ceil_units(delta: timedelta, unit: timedelta) -> int:
    return max(0, math.ceil(delta / unit))


def _hours_into_last_day(delta: timedelta) -> int:
    if delta <= timedelta(0):
        return 0
    return (delta % _DAY) // _HOUR


def resolve_status(
    organization: Organization,
    *,
    now: datetime,
    default_pilot_end: Optional[datetime] = None,
) -> OrgPilotStatus:
    """Compute the plan status of ``organization`` as observed at ``now``.

    ``days_remaining`` counts started days left. ``hours_remaining`` is the
    whole hours left within the final partial day. Both are only reported
    while the organization is in its pilot and are ``None`` otherwise.
    """

    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    plan_status = parse_plan_status(organization)
    pilot_end = effective_pilot_end(organization, default_pilot_end)
    is_expired = pilot_end is not None and now > pilot_end

    days_remaining: Optional[int] = None
    hours_remaining: Optional[int] = None
    if plan_status == PlanStatus.PILOT and pilot_end is not None:
        remaining = pilot_end - now
        days_remaining = _ceil_units(remaining, _DAY)
        hours_remaining = _hours_into_last_day(remaining)

    return OrgPilotStatus(
        organization_id=organization.id,
        plan_tier=organization.plan_tier,
        plan_status=plan_status,
        pilot_start_at=organization.pilot_start_at,
        pilot_end_at=pilot_end,
        converted_at=organization.converted_at,
        days_remaining=days_remaining,
        hours_remaining=hours_remaining,
        is_expired=is_expired,
    )

"""Daily quota enforcement utilities for feature gating."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import status

from ..errors import StoreUnavailable
from ..usage.models import UsageReservation, UsageSnapshot
from ..usage.service import UsageMeter
from .exceptions import FeatureGateError

logger = logging.getLogger(__name__)


def consume_quota(
    meter: UsageMeter,
    organization_id: str,
    metric: str,
    *,
    error_code: str = "quota_exceeded",
) -> UsageReservation:
    """Reserve one unit of today's quota or raise when the action must not run.

    An unreachable counter store is treated as a rejection so that gated
    features never run unmetered.
    """

    try:
        reservation = meter.try_increment(organization_id, metric)
    except StoreUnavailable as exc:
        logger.error("Usage store unavailable, denying org=%s metric=%s", organization_id, metric)
        raise FeatureGateError(
            code="usage_unavailable",
            message="Usage could not be verified. Please try again.",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"metric": metric},
        ) from exc

    if not reservation.accepted:
        raise FeatureGateError(
            code=error_code,
            message="Daily quota exceeded.",
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "metric": reservation.metric,
                "quota": reservation.limit,
                "used": reservation.new_count,
            },
        )

    return reservation


def usage_snapshot(meter: UsageMeter, organization_id: str, metric: str) -> Optional[UsageSnapshot]:
    """Return the counter for display, or ``None`` when it cannot be read."""

    try:
        return meter.snapshot(organization_id, metric)
    except StoreUnavailable:
        logger.warning("Usage badge unavailable org=%s metric=%s", organization_id, metric)
        return None

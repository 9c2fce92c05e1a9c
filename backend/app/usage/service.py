"""Quota metering for features limited to a number of runs per day."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone, tzinfo
from typing import Callable, Optional

from ..entitlements.catalog import normalize_metric
from ..entitlements.service import EntitlementResolver
from .models import UsageReservation, UsageSnapshot
from .store import UsageCounterStore, reporting_day

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class UsageMeter:
    """Couples limit resolution with atomic counter reservations."""

    store: UsageCounterStore
    resolver: EntitlementResolver
    reporting_timezone: tzinfo = timezone.utc
    clock: Callable[[], datetime] = field(default=_utcnow)

    def current_day(self) -> date:
        return reporting_day(self.clock(), self.reporting_timezone)

    def try_increment(self, organization_id: str, metric: str) -> UsageReservation:
        """Reserve one unit of today's quota, or report that the quota is spent."""

        metric_name = normalize_metric(metric)
        day = self.current_day()
        limit = self.resolver.resolve_limit(organization_id, metric_name)
        reservation = self.store.try_increment(organization_id, metric_name, day, limit)
        if not reservation.accepted:
            logger.info(
                "Quota exhausted org=%s metric=%s day=%s used=%s limit=%s",
                organization_id,
                metric_name,
                day.isoformat(),
                reservation.new_count,
                limit,
            )
        return reservation

    def peek(self, organization_id: str, metric: str, day: Optional[date] = None) -> int:
        return self.store.peek(organization_id, normalize_metric(metric), day or self.current_day())

    def snapshot(self, organization_id: str, metric: str) -> UsageSnapshot:
        metric_name = normalize_metric(metric)
        day = self.current_day()
        return UsageSnapshot(
            organization_id=organization_id,
            metric=metric_name,
            day=day,
            used=self.store.peek(organization_id, metric_name, day),
            limit=self.resolver.resolve_limit(organization_id, metric_name),
        )

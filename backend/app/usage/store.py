"""Daily usage counter storage contract and an in-process implementation."""
from __future__ import annotations

from datetime import date, datetime, timezone, tzinfo
from threading import Lock
from typing import Dict, Protocol, Tuple

from .models import UsageReservation

CounterKey = Tuple[str, str, date]

LOCK_STRIPES = 64


def reporting_day(moment: datetime, tz: tzinfo = timezone.utc) -> date:
    """Return the calendar day ``moment`` falls on in the reporting timezone."""

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(tz).date()


class UsageCounterStore(Protocol):
    """Durable per-(organization, metric, day) counters."""

    def try_increment(self, organization_id: str, metric: str, day: date, limit: int) -> UsageReservation:
        """Increment the counter only if the result stays within ``limit``."""

    def peek(self, organization_id: str, metric: str, day: date) -> int:
        """Return the current count, 0 when the counter does not exist."""


class InMemoryUsageCounterStore:
    """Thread safe counter store for tests and single process deployments."""

    def __init__(self, *, stripes: int = LOCK_STRIPES) -> None:
        if stripes < 1:
            raise ValueError("stripes must be positive")
        self._counts: Dict[CounterKey, int] = {}
        # Fixed pool; a counter always maps to the same stripe.
        self._locks: Tuple[Lock, ...] = tuple(Lock() for _ in range(stripes))

    def _lock_for(self, key: CounterKey) -> Lock:
        return self._locks[hash(key) % len(self._locks)]

    @property
    def lock_count(self) -> int:
        return len(self._locks)

    def try_increment(self, organization_id: str, metric: str, day: date, limit: int) -> UsageReservation:
        key = (organization_id, metric, day)
        with self._lock_for(key):
            current = self._counts.get(key, 0)
            accepted = current + 1 <= limit
            if accepted:
                current += 1
                self._counts[key] = current
        return UsageReservation(
            organization_id=organization_id,
            metric=metric,
            day=day,
            accepted=accepted,
            new_count=current,
            limit=limit,
        )

    def peek(self, organization_id: str, metric: str, day: date) -> int:
        key = (organization_id, metric, day)
        with self._lock_for(key):
            return self._counts.get(key, 0)

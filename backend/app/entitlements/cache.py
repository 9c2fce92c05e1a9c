"""Per-organization cache of resolved daily quota limits."""
from __future__ import annotations

from datetime import datetime, timezone
from threading import Lock
from typing import Callable, Dict, NamedTuple, Optional, Protocol


class LimitCache(Protocol):
    """Limits cached by organization so a plan change can drop them together."""

    def get(self, organization_id: str, metric: str) -> Optional[int]:
        ...

    def put(self, organization_id: str, metric: str, limit: int, expires_at: datetime) -> None:
        ...

    def drop_organization(self, organization_id: str) -> None:
        ...


class _CachedLimit(NamedTuple):
    limit: int
    expires_at: datetime


class InMemoryLimitCache:
    """Process local limit table shared by concurrent request handlers.

    Entries are grouped under their organization, so invalidation after a
    pilot activation or conversion is a single pop rather than a scan.
    """

    def __init__(self, *, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._limits: Dict[str, Dict[str, _CachedLimit]] = {}
        self._lock = Lock()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def get(self, organization_id: str, metric: str) -> Optional[int]:
        now = self._clock()
        with self._lock:
            metrics = self._limits.get(organization_id)
            cached = metrics.get(metric) if metrics else None
            if cached is None:
                return None
            if now >= cached.expires_at:
                del metrics[metric]
                if not metrics:
                    del self._limits[organization_id]
                return None
            return cached.limit

    def put(self, organization_id: str, metric: str, limit: int, expires_at: datetime) -> None:
        if expires_at <= self._clock():
            return
        with self._lock:
            self._limits.setdefault(organization_id, {})[metric] = _CachedLimit(limit, expires_at)

    def drop_organization(self, organization_id: str) -> None:
        with self._lock:
            self._limits.pop(organization_id, None)

    def __len__(self) -> int:
        with self._lock:
            return sum(len(metrics) for metrics in self._limits.values())

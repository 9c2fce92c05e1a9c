"""Service resolving effective quota limits and feature entitlements."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Protocol, Sequence

from .cache import LimitCache
from .catalog import default_daily_limit, limit_feature_key, normalize_metric
from .models import EntitlementCheck, EntitlementGrant

logger = logging.getLogger("entitlements")


class EntitlementRepository(Protocol):
    """Data access layer for organization entitlement grants."""

    def get_grant(self, organization_id: str, feature: str) -> Optional[EntitlementGrant]:
        ...

    def upsert_grants(self, grants: Sequence[EntitlementGrant]) -> Sequence[EntitlementGrant]:
        ...


class EntitlementResolver:
    """Resolves per-organization quota limits, falling back to catalog defaults."""

    def __init__(
        self,
        repository: EntitlementRepository,
        cache: LimitCache,
        *,
        clock: Optional[Callable[[], datetime]] = None,
        ttl_seconds: int = 5,
    ) -> None:
        self._repository = repository
        self._cache = cache
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._ttl_seconds = max(ttl_seconds, 0)

    def resolve_limit(self, organization_id: str, metric: str) -> int:
        """Return the daily quota for ``metric`` within ``organization_id``."""

        metric_name = normalize_metric(metric)
        cached = self._cache.get(organization_id, metric_name)
        if cached is not None:
            return cached

        limit = self._lookup_limit(organization_id, metric_name)
        if self._ttl_seconds:
            expires_at = self._clock() + timedelta(seconds=self._ttl_seconds)
            self._cache.put(organization_id, metric_name, limit, expires_at)
        return limit

    def check_feature(self, organization_id: str, feature: str) -> EntitlementCheck:
        """Return whether the organization holds an enabled grant for ``feature``."""

        grant = self._repository.get_grant(organization_id, feature)
        return EntitlementCheck.from_grant(feature, grant)

    def invalidate_organization(self, organization_id: str) -> None:
        self._cache.drop_organization(organization_id)

    def _lookup_limit(self, organization_id: str, metric_name: str) -> int:
        feature_key = limit_feature_key(metric_name)
        grant = self._repository.get_grant(organization_id, feature_key)
        if grant is None or not grant.enabled:
            return default_daily_limit(metric_name)

        value = grant.numeric_value
        if value is None:
            logger.warning(
                "Ignoring non-numeric limit override org=%s feature=%s value=%r",
                organization_id,
                feature_key,
                grant.value,
            )
            return default_daily_limit(metric_name)
        return value

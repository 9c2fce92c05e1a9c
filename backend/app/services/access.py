"""Application wiring for the pilot gate, entitlement resolver, and usage meter."""
from __future__ import annotations

import logging
from functools import lru_cache

from ..config import GateConfig, load_gate_config
from ..entitlements import EntitlementResolver, InMemoryLimitCache
from ..entitlements.repository import PostgresEntitlementRepository
from ..feature_gates import AccessGate
from ..organizations import LifecycleEvent, LifecycleEventLogger, PilotLifecycleService
from ..organizations.repository import PostgresOrganizationRepository
from ..usage import UsageMeter
from ..usage.repository import PostgresUsageCounterStore


logger = logging.getLogger("organizations")


class LoggingLifecycleEventLogger(LifecycleEventLogger):
    """Event logger forwarding plan lifecycle audit events to logging."""

    def log(self, event: LifecycleEvent) -> None:
        logger.info(
            "Lifecycle event %s org=%s status=%s->%s metadata=%s",
            event.action.value,
            event.organization_id,
            event.status_before.value if event.status_before else None,
            event.status_after.value,
            event.metadata,
        )


@lru_cache(maxsize=1)
def get_gate_config() -> GateConfig:
    return load_gate_config()


@lru_cache(maxsize=1)
def get_organization_repository() -> PostgresOrganizationRepository:
    return PostgresOrganizationRepository()


@lru_cache(maxsize=1)
def get_entitlement_repository() -> PostgresEntitlementRepository:
    return PostgresEntitlementRepository()


@lru_cache(maxsize=1)
def get_entitlement_resolver() -> EntitlementResolver:
    config = get_gate_config()
    return EntitlementResolver(
        repository=get_entitlement_repository(),
        cache=InMemoryLimitCache(),
        ttl_seconds=config.limit_cache_ttl_seconds,
    )


@lru_cache(maxsize=1)
def get_usage_meter() -> UsageMeter:
    config = get_gate_config()
    return UsageMeter(
        store=PostgresUsageCounterStore(),
        resolver=get_entitlement_resolver(),
        reporting_timezone=config.reporting_timezone,
    )


@lru_cache(maxsize=1)
def get_lifecycle_service() -> PilotLifecycleService:
    config = get_gate_config()
    return PilotLifecycleService(
        repository=get_organization_repository(),
        grant_writer=get_entitlement_repository(),
        event_logger=LoggingLifecycleEventLogger(),
        limit_invalidator=get_entitlement_resolver(),
        default_pilot_end=config.default_pilot_end,
    )


@lru_cache(maxsize=1)
def get_access_gate() -> AccessGate:
    config = get_gate_config()
    return AccessGate(
        lifecycle=get_lifecycle_service(),
        repository=get_organization_repository(),
        default_pilot_end=config.default_pilot_end,
        billing_redirect_path=config.billing_redirect_path,
    )


__all__ = [
    "LoggingLifecycleEventLogger",
    "get_access_gate",
    "get_entitlement_resolver",
    "get_gate_config",
    "get_lifecycle_service",
    "get_usage_meter",
]

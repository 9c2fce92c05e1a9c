from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence

import pytest

from backend.app.entitlements import EntitlementGrant, PlanStatus, PlanTier
from backend.app.organizations import (
    GrantWriter,
    LifecycleAction,
    LifecycleEvent,
    LifecycleEventLogger,
    LimitInvalidator,
    Organization,
    OrganizationRepository,
    PilotLifecycleService,
)

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
DEFAULT_END = datetime(2026, 3, 31, 18, 29, 59, tzinfo=timezone.utc)


class InMemoryOrganizationRepository(OrganizationRepository):
    def __init__(self) -> None:
        self.organizations: Dict[str, Organization] = {}
        self.lock_writes = 0
        self._lock = threading.Lock()

    def add(self, organization: Organization) -> None:
        self.organizations[organization.id] = organization

    def get_organization(self, organization_id: str) -> Optional[Organization]:
        return self.organizations.get(organization_id)

    def lock_expired_pilot(
        self,
        organization_id: str,
        *,
        now: datetime,
        default_pilot_end: Optional[datetime],
    ) -> bool:
        with self._lock:
            organization = self.organizations.get(organization_id)
            if organization is None or organization.plan_status != "pilot":
                return False
            end = organization.pilot_end_at or default_pilot_end
            if end is None or not end < now:
                return False
            self.organizations[organization_id] = organization.model_copy(update={"plan_status": "locked"})
            self.lock_writes += 1
            return True

    def start_pilot(
        self,
        organization_id: str,
        *,
        tier: PlanTier,
        pilot_start_at: datetime,
        pilot_end_at: datetime,
    ) -> Optional[Organization]:
        with self._lock:
            organization = self.organizations.get(organization_id)
            if organization is None or organization.plan_status != "pilot":
                return None
            updated = organization.model_copy(
                update={"plan_tier": tier, "pilot_start_at": pilot_start_at, "pilot_end_at": pilot_end_at}
            )
            self.organizations[organization_id] = updated
            return updated

    def mark_converted(
        self,
        organization_id: str,
        *,
        subscription_id: str,
        converted_at: datetime,
    ) -> Optional[Organization]:
        with self._lock:
            organization = self.organizations.get(organization_id)
            if organization is None or organization.plan_status not in {"pilot", "locked"}:
                return None
            updated = organization.model_copy(
                update={
                    "plan_status": "active",
                    "converted_at": converted_at,
                    "billing_subscription_id": subscription_id,
                }
            )
            self.organizations[organization_id] = updated
            return updated


class RecordingGrantWriter(GrantWriter):
    def __init__(self) -> None:
        self.grants: List[EntitlementGrant] = []

    def upsert_grants(self, grants: Sequence[EntitlementGrant]) -> Sequence[EntitlementGrant]:
        self.grants.extend(grants)
        return list(grants)


class InMemoryEventLogger(LifecycleEventLogger):
    def __init__(self) -> None:
        self.events: List[LifecycleEvent] = []
        self._lock = threading.Lock()

    def log(self, event: LifecycleEvent) -> None:
        with self._lock:
            self.events.append(event)


class RecordingLimitInvalidator(LimitInvalidator):
    def __init__(self) -> None:
        self.organization_ids: List[str] = []

    def invalidate_organization(self, organization_id: str) -> None:
        self.organization_ids.append(organization_id)


def _fixed_clock() -> datetime:
    return NOW


class LifecycleFixture:
    def __init__(self) -> None:
        self.repository = InMemoryOrganizationRepository()
        self.grant_writer = RecordingGrantWriter()
        self.event_logger = InMemoryEventLogger()
        self.invalidator = RecordingLimitInvalidator()
        self.service = PilotLifecycleService(
            repository=self.repository,
            grant_writer=self.grant_writer,
            event_logger=self.event_logger,
            limit_invalidator=self.invalidator,
            default_pilot_end=DEFAULT_END,
            clock=_fixed_clock,
        )


@pytest.fixture
def lifecycle() -> LifecycleFixture:
    return LifecycleFixture()


def _organization(plan_status: str = "pilot", pilot_end_at: Optional[datetime] = None) -> Organization:
    return Organization(
        id="org-1",
        name="Acme",
        plan_tier=PlanTier.GROWTH,
        plan_status=plan_status,
        pilot_start_at=NOW - timedelta(days=30),
        pilot_end_at=pilot_end_at,
    )


def test_lock_if_expired_locks_elapsed_pilot(lifecycle: LifecycleFixture) -> None:
    lifecycle.repository.add(_organization(pilot_end_at=NOW - timedelta(seconds=1)))

    outcome = lifecycle.service.lock_if_expired("org-1")

    assert outcome.transitioned is True
    assert lifecycle.repository.organizations["org-1"].plan_status == "locked"
    assert [event.action for event in lifecycle.event_logger.events] == [LifecycleAction.PILOT_LOCKED]


def test_lock_if_expired_leaves_running_pilot(lifecycle: LifecycleFixture) -> None:
    lifecycle.repository.add(_organization(pilot_end_at=NOW + timedelta(days=1)))

    outcome = lifecycle.service.lock_if_expired("org-1")

    assert outcome.transitioned is False
    assert lifecycle.repository.organizations["org-1"].plan_status == "pilot"
    assert lifecycle.event_logger.events == []


@pytest.mark.parametrize("plan_status", ["active", "locked"])
def test_lock_if_expired_is_noop_outside_pilot(lifecycle: LifecycleFixture, plan_status: str) -> None:
    lifecycle.repository.add(_organization(plan_status=plan_status, pilot_end_at=NOW - timedelta(days=5)))

    outcome = lifecycle.service.lock_if_expired("org-1")

    assert outcome.transitioned is False
    assert lifecycle.repository.organizations["org-1"].plan_status == plan_status
    assert lifecycle.repository.lock_writes == 0


def test_lock_if_expired_uses_default_end_when_missing(lifecycle: LifecycleFixture) -> None:
    lifecycle.repository.add(_organization(pilot_end_at=None))

    assert lifecycle.service.lock_if_expired("org-1").transitioned is False


def test_concurrent_locks_apply_exactly_once(lifecycle: LifecycleFixture) -> None:
    lifecycle.repository.add(_organization(pilot_end_at=NOW - timedelta(hours=1)))
    barrier = threading.Barrier(8)
    outcomes = []
    outcomes_lock = threading.Lock()

    def worker() -> None:
        barrier.wait()
        outcome = lifecycle.service.lock_if_expired("org-1")
        with outcomes_lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sum(outcome.transitioned for outcome in outcomes) == 1
    assert lifecycle.repository.lock_writes == 1
    assert lifecycle.repository.organizations["org-1"].plan_status == "locked"
    assert len(lifecycle.event_logger.events) == 1


def test_activate_pilot_provisions_growth_grants(lifecycle: LifecycleFixture) -> None:
    lifecycle.repository.add(_organization())

    organization = lifecycle.service.activate_pilot("org-1")

    assert organization.pilot_start_at == NOW
    assert organization.pilot_end_at == DEFAULT_END
    features = {grant.feature: grant.value for grant in lifecycle.grant_writer.grants}
    assert features["limits_ai_shortlist_per_day"] == "50"
    assert "feature_copilot" in features
    assert lifecycle.invalidator.organization_ids == ["org-1"]
    event = lifecycle.event_logger.events[-1]
    assert event.action == LifecycleAction.PILOT_STARTED
    assert event.metadata["tier"] == "growth"


def test_activate_pilot_rejects_past_end(lifecycle: LifecycleFixture) -> None:
    lifecycle.repository.add(_organization())

    with pytest.raises(ValueError):
        lifecycle.service.activate_pilot("org-1", pilot_end=NOW - timedelta(days=1))

    assert lifecycle.grant_writer.grants == []


def test_activate_pilot_requires_pilot_status(lifecycle: LifecycleFixture) -> None:
    lifecycle.repository.add(_organization(plan_status="locked"))

    with pytest.raises(ValueError) as exc:
        lifecycle.service.activate_pilot("org-1")

    assert "locked" in str(exc.value)


def test_activate_pilot_for_unknown_organization(lifecycle: LifecycleFixture) -> None:
    with pytest.raises(LookupError):
        lifecycle.service.activate_pilot("missing")


def test_convert_to_paid_unlocks_locked_organization(lifecycle: LifecycleFixture) -> None:
    lifecycle.repository.add(_organization(plan_status="locked"))

    organization = lifecycle.service.convert_to_paid("org-1", "sub_123")

    assert organization.plan_status == "active"
    assert organization.converted_at == NOW
    assert organization.billing_subscription_id == "sub_123"
    event = lifecycle.event_logger.events[-1]
    assert event.action == LifecycleAction.CONVERTED
    assert event.status_before == PlanStatus.LOCKED
    assert lifecycle.invalidator.organization_ids == ["org-1"]


def test_convert_to_paid_is_idempotent(lifecycle: LifecycleFixture) -> None:
    lifecycle.repository.add(_organization())
    first = lifecycle.service.convert_to_paid("org-1", "sub_123")

    second = lifecycle.service.convert_to_paid("org-1", "sub_456")

    assert second == first
    assert len(lifecycle.event_logger.events) == 1


def test_convert_to_paid_requires_subscription(lifecycle: LifecycleFixture) -> None:
    lifecycle.repository.add(_organization())

    with pytest.raises(ValueError):
        lifecycle.service.convert_to_paid("org-1", "  ")

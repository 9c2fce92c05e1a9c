from __future__ import annotations

import logging
from datetime import date, datetime, timezone

import pytest

from backend.app.entitlements import EntitlementCheck, EntitlementResolver, InMemoryLimitCache
from backend.app.errors import StoreUnavailable
from backend.app.feature_gates import (
    FeatureGateError,
    GateDecision,
    consume_quota,
    require_entitlement,
    require_unlocked,
    usage_snapshot,
)
from backend.app.usage import InMemoryUsageCounterStore, UsageMeter


class EmptyEntitlementRepository:
    def get_grant(self, organization_id, feature):
        return None

    def upsert_grants(self, grants):
        return list(grants)


class UnavailableCounterStore:
    def try_increment(self, organization_id, metric, day, limit):
        raise StoreUnavailable(operation="usage_counters")

    def peek(self, organization_id, metric, day):
        raise StoreUnavailable(operation="usage_counters")


def _fixed_clock() -> datetime:
    return datetime(2025, 1, 15, 9, 0, tzinfo=timezone.utc)


def _meter(store=None) -> UsageMeter:
    resolver = EntitlementResolver(EmptyEntitlementRepository(), InMemoryLimitCache(), ttl_seconds=0)
    return UsageMeter(store=store or InMemoryUsageCounterStore(), resolver=resolver, clock=_fixed_clock)


def test_require_entitlement_allows_enabled_feature() -> None:
    check = EntitlementCheck(feature="feature_copilot", enabled=True)

    assert require_entitlement(check) is check


def test_require_entitlement_raises_when_missing() -> None:
    with pytest.raises(FeatureGateError) as exc:
        require_entitlement(EntitlementCheck(feature="feature_retention"))

    assert exc.value.code == "entitlement_required"
    assert exc.value.status_code == 403
    assert exc.value.payload["missing_entitlement"] == "feature_retention"
    assert "Upgrade required" in exc.value.message


def test_require_unlocked_blocks_locked_organizations() -> None:
    decision = GateDecision(status="locked", is_locked=True, redirect_to="/billing")

    with pytest.raises(FeatureGateError) as exc:
        require_unlocked(decision)

    assert exc.value.status_code == 402
    assert exc.value.payload["redirect_to"] == "/billing"


def test_require_unlocked_passes_unknown_and_pilot() -> None:
    assert require_unlocked(GateDecision.unknown()).is_unknown
    assert require_unlocked(GateDecision(status="pilot", is_pilot=True)).is_pilot


def test_consume_quota_raises_once_exhausted() -> None:
    meter = _meter()
    for _ in range(2):
        consume_quota(meter, "org-1", "video_analysis")

    with pytest.raises(FeatureGateError) as exc:
        consume_quota(meter, "org-1", "video_analysis")

    assert exc.value.code == "quota_exceeded"
    assert exc.value.status_code == 429
    assert exc.value.payload["quota"] == 2
    assert exc.value.payload["used"] == 2
    assert meter.peek("org-1", "video_analysis", date(2025, 1, 15)) == 2


def test_consume_quota_fails_closed_when_store_is_down() -> None:
    meter = _meter(UnavailableCounterStore())

    with pytest.raises(FeatureGateError) as exc:
        consume_quota(meter, "org-1", "ai_shortlist")

    assert exc.value.code == "usage_unavailable"
    assert exc.value.status_code == 503
    assert isinstance(exc.value.__cause__, StoreUnavailable)
    http_exc = exc.value.to_http_exception()
    assert http_exc.status_code == 503
    assert http_exc.headers == {"Retry-After": "1"}


def test_usage_snapshot_fails_open(caplog: pytest.LogCaptureFixture) -> None:
    meter = _meter(UnavailableCounterStore())

    with caplog.at_level(logging.WARNING):
        assert usage_snapshot(meter, "org-1", "ai_shortlist") is None

    assert "Usage badge unavailable" in caplog.text


def test_usage_snapshot_reports_counts() -> None:
    meter = _meter()
    consume_quota(meter, "org-1", "ai_shortlist")

    snapshot = usage_snapshot(meter, "org-1", "ai_shortlist")

    assert snapshot is not None
    assert (snapshot.used, snapshot.limit, snapshot.remaining) == (1, 3, 2)


def test_feature_gate_error_converts_to_http_exception() -> None:
    error = FeatureGateError(code="entitlement_required", message="nope", detail={"missing_entitlement": "x"})

    http_exc = error.to_http_exception()

    assert http_exc.status_code == 403
    assert http_exc.detail == {"error": "entitlement_required", "message": "nope", "missing_entitlement": "x"}
    assert http_exc.headers is None

"""API routes exposing pilot gating, quota metering, and plan lifecycle."""
from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Any, Callable, NoReturn, Optional

from fastapi import APIRouter, Cookie, Depends, HTTPException, Query, status

from ..errors import DataIntegrityError, StoreUnavailable
from ..feature_gates import FeatureGateError, consume_quota, require_unlocked, usage_snapshot
from ..schemas.access import (
    ConversionRequest,
    EntitlementCheckResponse,
    GateDecisionResponse,
    OrganizationPlanResponse,
    PilotActivationRequest,
    UsageReservationResponse,
    UsageSnapshotResponse,
)
from ..services.access import (
    get_access_gate,
    get_entitlement_resolver,
    get_lifecycle_service,
    get_usage_meter,
)

logger = logging.getLogger(__name__)


def _resolve_get_current_user() -> Callable[..., Any]:  # pragma: no cover
    try:
        from backend.main import get_current_user as resolved
    except ModuleNotFoundError as exc:
        if exc.name != "backend":
            raise
        from ...main import get_current_user as resolved  # type: ignore[no-redef]
    return resolved


@lru_cache(maxsize=1)
def _get_current_user_callable() -> Callable[..., Any]:
    return _resolve_get_current_user()


_SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "session")


def _get_current_user(
    session_token: Optional[str] = Cookie(None, alias=_SESSION_COOKIE_NAME),
):
    resolved = _get_current_user_callable()
    return resolved(session_token=session_token)


def _raise_storage_error(exc: Exception) -> NoReturn:
    if isinstance(exc, DataIntegrityError):
        logger.error("Organization record is invalid org=%s value=%r", exc.organization_id, exc.value)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "plan_status_invalid", "message": str(exc)},
        ) from exc
    raise HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail={"error": "store_unavailable", "message": "Please try again."},
    ) from exc


_PLAN_ADMIN_ROLES = frozenset({"admin"})


def _require_plan_admin(current_user: Any) -> None:
    if getattr(current_user, "role", None) not in _PLAN_ADMIN_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only administrators can change an organization plan",
        )


router = APIRouter(prefix="/api/orgs", tags=["access"])


@router.get("/{org_id}/access", response_model=GateDecisionResponse)
def evaluate_access(
    org_id: str,
    allowed_when_locked: bool = Query(False, alias="allowedWhenLocked"),
    *,
    current_user=Depends(_get_current_user),
) -> GateDecisionResponse:
    gate = get_access_gate()
    try:
        decision = gate.evaluate(org_id, allowed_when_locked=allowed_when_locked)
    except (DataIntegrityError, StoreUnavailable) as exc:
        _raise_storage_error(exc)
    return GateDecisionResponse.from_decision(decision)


@router.post("/{org_id}/usage/{metric}", response_model=UsageReservationResponse)
def record_usage(
    org_id: str,
    metric: str,
    *,
    current_user=Depends(_get_current_user),
) -> UsageReservationResponse:
    gate = get_access_gate()
    meter = get_usage_meter()
    try:
        decision = gate.evaluate(org_id)
        if decision.is_unknown:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Organization not found")
        require_unlocked(decision)
        reservation = consume_quota(meter, org_id, metric)
    except FeatureGateError as exc:
        raise exc.to_http_exception() from exc
    except (DataIntegrityError, StoreUnavailable) as exc:
        _raise_storage_error(exc)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return UsageReservationResponse.from_reservation(reservation)


@router.get("/{org_id}/usage/{metric}", response_model=UsageSnapshotResponse)
def read_usage(
    org_id: str,
    metric: str,
    *,
    current_user=Depends(_get_current_user),
) -> UsageSnapshotResponse:
    meter = get_usage_meter()
    try:
        snapshot = usage_snapshot(meter, org_id, metric)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return UsageSnapshotResponse.from_snapshot(metric, snapshot)


@router.get("/{org_id}/entitlements/{feature}", response_model=EntitlementCheckResponse)
def check_entitlement(
    org_id: str,
    feature: str,
    *,
    current_user=Depends(_get_current_user),
) -> EntitlementCheckResponse:
    resolver = get_entitlement_resolver()
    try:
        check = resolver.check_feature(org_id, feature)
    except StoreUnavailable as exc:
        _raise_storage_error(exc)
    return EntitlementCheckResponse.from_check(check)


@router.post("/{org_id}/pilot", response_model=OrganizationPlanResponse)
def activate_pilot(
    org_id: str,
    payload: PilotActivationRequest,
    *,
    current_user=Depends(_get_current_user),
) -> OrganizationPlanResponse:
    _require_plan_admin(current_user)
    service = get_lifecycle_service()
    try:
        organization = service.activate_pilot(org_id, payload.tier, pilot_end=payload.pilot_end)
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except (DataIntegrityError, StoreUnavailable) as exc:
        _raise_storage_error(exc)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return OrganizationPlanResponse.from_organization(organization)


@router.post("/{org_id}/conversion", response_model=OrganizationPlanResponse)
def convert_to_paid(
    org_id: str,
    payload: ConversionRequest,
    *,
    current_user=Depends(_get_current_user),
) -> OrganizationPlanResponse:
    _require_plan_admin(current_user)
    service = get_lifecycle_service()
    try:
        organization = service.convert_to_paid(org_id, payload.subscription_id)
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except (DataIntegrityError, StoreUnavailable) as exc:
        _raise_storage_error(exc)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return OrganizationPlanResponse.from_organization(organization)

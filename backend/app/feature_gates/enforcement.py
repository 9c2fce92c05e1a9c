"""Helpers for enforcing entitlement and lock checks on API and service layers."""
from __future__ import annotations

from typing import Optional

from fastapi import status

from ..entitlements.models import EntitlementCheck
from .access import GateDecision
from .exceptions import FeatureGateError


def require_entitlement(
    check: EntitlementCheck,
    *,
    error_code: str = "entitlement_required",
    message: Optional[str] = None,
) -> EntitlementCheck:
    """Ensure the organization holds an enabled grant before proceeding.

    Parameters
    ----------
    check:
        Result of :meth:`EntitlementResolver.check_feature` for the feature
        guarding the action.
    error_code:
        Optional override for the surfaced error code when the entitlement is
        not granted. Defaults to ``"entitlement_required"``.
    message:
        Optional human-friendly message explaining the failure. If omitted, an
        upgrade prompt mentioning the missing feature is used.
    """

    if not check.enabled:
        failure_message = message or f"Upgrade required to use '{check.feature}'."
        raise FeatureGateError(
            code=error_code,
            message=failure_message,
            detail={"missing_entitlement": check.feature},
        )
    return check


def require_unlocked(decision: GateDecision, *, error_code: str = "organization_locked") -> GateDecision:
    """Refuse gated actions for organizations whose pilot has been locked."""

    if decision.is_locked:
        detail = {"status": decision.status}
        if decision.redirect_to:
            detail["redirect_to"] = decision.redirect_to
        raise FeatureGateError(
            code=error_code,
            message="Your pilot has ended. Choose a plan to continue.",
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail=detail,
        )
    return decision

"""Access decisions combining the lazy pilot lock with status resolution."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

from pydantic import BaseModel, ConfigDict

from ..entitlements.models import PlanStatus
from ..organizations.models import LockOutcome, Organization, OrgPilotStatus
from ..organizations.status import resolve_status

logger = logging.getLogger(__name__)

UNKNOWN_STATUS = "unknown"


class LockTransition(Protocol):
    def lock_if_expired(self, organization_id: str) -> LockOutcome:
        ...


class OrganizationReader(Protocol):
    def get_organization(self, organization_id: str) -> Optional[Organization]:
        ...


class GateDecision(BaseModel):
    """Verdict returned to a navigating or acting caller."""

    status: str
    is_locked: bool = False
    is_pilot: bool = False
    is_active: bool = False
    redirect_to: Optional[str] = None
    pilot: Optional[OrgPilotStatus] = None

    model_config = ConfigDict(frozen=True)

    @classmethod
    def unknown(cls) -> "GateDecision":
        """Neutral outcome used before the tenant can be resolved. Callers must not gate on it."""

        return cls(status=UNKNOWN_STATUS)

    @property
    def is_unknown(self) -> bool:
        return self.status == UNKNOWN_STATUS


class AccessGate:
    """Evaluates whether an organization may use gated routes and actions."""

    def __init__(
        self,
        lifecycle: LockTransition,
        repository: OrganizationReader,
        *,
        default_pilot_end: Optional[datetime] = None,
        billing_redirect_path: str = "/billing",
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._lifecycle = lifecycle
        self._repository = repository
        self._default_pilot_end = default_pilot_end
        self._billing_redirect_path = billing_redirect_path
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def evaluate(self, organization_id: Optional[str], *, allowed_when_locked: bool = False) -> GateDecision:
        """Lock the organization if its pilot elapsed, then report its status.

        The lock transition is the only write this method performs. Storage
        and data integrity failures propagate to the caller.
        """

        if not organization_id or not organization_id.strip():
            return GateDecision.unknown()

        self._lifecycle.lock_if_expired(organization_id)

        organization = self._repository.get_organization(organization_id)
        if organization is None:
            logger.debug("Gate evaluated for unknown organization org=%s", organization_id)
            return GateDecision.unknown()

        pilot = resolve_status(
            organization,
            now=self._clock(),
            default_pilot_end=self._default_pilot_end,
        )
        is_locked = pilot.plan_status == PlanStatus.LOCKED
        redirect_to = self._billing_redirect_path if is_locked and not allowed_when_locked else None

        return GateDecision(
            status=pilot.plan_status.value,
            is_locked=is_locked,
            is_pilot=pilot.plan_status == PlanStatus.PILOT,
            is_active=pilot.plan_status == PlanStatus.ACTIVE,
            redirect_to=redirect_to,
            pilot=pilot,
        )

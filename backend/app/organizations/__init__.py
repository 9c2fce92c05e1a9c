"""Organization plan records, status resolution, and pilot lifecycle."""

from .models import LifecycleAction, LifecycleEvent, LockOutcome, Organization, OrgPilotStatus
from .service import (
    GrantWriter,
    LifecycleEventLogger,
    LimitInvalidator,
    OrganizationRepository,
    PilotLifecycleService,
)
from .status import effective_pilot_end, parse_plan_status, resolve_status

__all__ = [
    "LifecycleAction",
    "LifecycleEvent",
    "LockOutcome",
    "Organization",
    "OrgPilotStatus",
    "GrantWriter",
    "LifecycleEventLogger",
    "LimitInvalidator",
    "OrganizationRepository",
    "PilotLifecycleService",
    "effective_pilot_end",
    "parse_plan_status",
    "resolve_status",
]

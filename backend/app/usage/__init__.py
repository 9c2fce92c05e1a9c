"""Daily usage counters and quota metering."""

from .models import UsageReservation, UsageSnapshot
from .service import UsageMeter
from .store import InMemoryUsageCounterStore, UsageCounterStore, reporting_day

__all__ = [
    "InMemoryUsageCounterStore",
    "UsageCounterStore",
    "UsageMeter",
    "UsageReservation",
    "UsageSnapshot",
    "reporting_day",
]

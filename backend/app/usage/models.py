"""Typed results returned by usage counters."""
from __future__ import annotations

from datetime import date

from pydantic import BaseModel, ConfigDict, Field

LOW_REMAINING_THRESHOLD = 3


class UsageReservation(BaseModel):
    """Outcome of a reserve-or-reject increment against a daily counter."""

    organization_id: str
    metric: str
    day: date
    accepted: bool
    new_count: int = Field(ge=0)
    limit: int

    model_config = ConfigDict(frozen=True)

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.new_count)


class UsageSnapshot(BaseModel):
    """Read-only view of a counter suitable for display badges."""

    organization_id: str
    metric: str
    day: date
    used: int = Field(ge=0)
    limit: int

    model_config = ConfigDict(frozen=True)

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used)

    @property
    def is_empty(self) -> bool:
        return self.remaining == 0

    @property
    def is_low(self) -> bool:
        return self.remaining <= LOW_REMAINING_THRESHOLD

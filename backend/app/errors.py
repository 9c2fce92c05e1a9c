"""Typed failures shared by the usage, organization, and gating layers."""
from __future__ import annotations

from typing import Optional


class StoreUnavailable(RuntimeError):
    """Raised when the backing store for counters or organizations cannot be reached."""

    def __init__(self, message: str = "Storage is unavailable", *, operation: Optional[str] = None) -> None:
        super().__init__(message)
        self.operation = operation


class DataIntegrityError(ValueError):
    """Raised when a persisted organization record holds a value outside its domain."""

    def __init__(self, message: str, *, organization_id: Optional[str] = None, value: object = None) -> None:
        super().__init__(message)
        self.organization_id = organization_id
        self.value = value

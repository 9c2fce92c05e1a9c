"""Configuration helpers for the entitlement gate."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import os

DEFAULT_PILOT_END = "2026-03-31T23:59:59+05:30"


@dataclass(frozen=True)
class GateConfig:
    """Configuration for pilot gating and usage metering."""

    reporting_timezone: tzinfo
    billing_redirect_path: str
    limit_cache_ttl_seconds: int
    default_pilot_end: datetime


def _to_int(value: Optional[str], *, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected integer value, got {value!r}") from exc


def _to_timezone(value: Optional[str]) -> tzinfo:
    name = (value or "").strip() or "UTC"
    if name.upper() in {"UTC", "Z"}:
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown reporting timezone {name!r}") from exc


def _to_aware_datetime(value: Optional[str], *, default: str) -> datetime:
    raw = (value or "").strip() or default
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError as exc:
        raise ValueError(f"Expected ISO-8601 timestamp, got {raw!r}") from exc
    if parsed.tzinfo is None:
        raise ValueError(f"Timestamp {raw!r} must include a UTC offset")
    return parsed


def load_gate_config(env: Optional[Mapping[str, str]] = None) -> GateConfig:
    """Load :class:`GateConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    reporting_timezone = _to_timezone(env_mapping.get("REPORTING_TIMEZONE"))

    redirect_path = (env_mapping.get("BILLING_REDIRECT_PATH") or "/billing").strip() or "/billing"
    if not redirect_path.startswith("/"):
        redirect_path = f"/{redirect_path}"

    cache_ttl = max(0, _to_int(env_mapping.get("LIMIT_CACHE_TTL_SECONDS"), default=5))
    default_pilot_end = _to_aware_datetime(env_mapping.get("PILOT_DEFAULT_END"), default=DEFAULT_PILOT_END)

    return GateConfig(
        reporting_timezone=reporting_timezone,
        billing_redirect_path=redirect_path,
        limit_cache_ttl_seconds=cache_ttl,
        default_pilot_end=default_pilot_end,
    )

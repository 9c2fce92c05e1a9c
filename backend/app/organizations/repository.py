"""Persistence layer for organization plan state.

Backed by the ``orgs`` table::

    CREATE TABLE orgs (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL DEFAULT '',
        plan_tier TEXT,
        plan_status TEXT NOT NULL DEFAULT 'pilot',
        pilot_start_at TIMESTAMPTZ,
        pilot_end_at TIMESTAMPTZ,
        converted_at TIMESTAMPTZ,
        billing_subscription_id TEXT
    );
"""
from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional

import psycopg2
import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor
from pydantic import ValidationError

from ..db import managed_connection
from ..entitlements.models import PlanTier
from ..errors import DataIntegrityError, StoreUnavailable
from .models import Organization

_COLUMNS = "id, name, plan_tier, plan_status, pilot_start_at, pilot_end_at, converted_at, billing_subscription_id"


def _row_to_organization(row: dict) -> Organization:
    try:
        return Organization(
            id=str(row["id"]),
            name=row.get("name") or "",
            plan_tier=row.get("plan_tier"),
            plan_status=row["plan_status"],
            pilot_start_at=row.get("pilot_start_at"),
            pilot_end_at=row.get("pilot_end_at"),
            converted_at=row.get("converted_at"),
            billing_subscription_id=row.get("billing_subscription_id"),
        )
    except ValidationError as exc:
        raise DataIntegrityError(
            f"Organization {row.get('id')} has an invalid record",
            organization_id=str(row.get("id")),
            value=row.get("plan_tier"),
        ) from exc


class PostgresOrganizationRepository:
    """Concrete repository persisting organization plan state in PostgreSQL."""

    def __init__(self, *, conn: Optional[PgConnection] = None) -> None:
        self._conn = conn

    @contextmanager
    def _cursor(self) -> Iterator[PgCursor]:
        try:
            with managed_connection(self._conn) as (connection, _managed):
                cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
                try:
                    yield cursor
                finally:
                    cursor.close()
        except (psycopg2.OperationalError, psycopg2.InterfaceError) as exc:
            raise StoreUnavailable("Organization store is unavailable", operation="orgs") from exc

    def get_organization(self, organization_id: str) -> Optional[Organization]:
        with self._cursor() as cursor:
            cursor.execute(
                f"SELECT {_COLUMNS} FROM orgs WHERE id = %s LIMIT 1",
                (organization_id,),
            )
            row = cursor.fetchone()
        return _row_to_organization(row) if row else None

    def lock_expired_pilot(
        self,
        organization_id: str,
        *,
        now: datetime,
        default_pilot_end: Optional[datetime],
    ) -> bool:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE orgs
                SET plan_status = 'locked'
                WHERE id = %(org_id)s
                  AND plan_status = 'pilot'
                  AND COALESCE(pilot_end_at, %(default_end)s) < %(now)s
                RETURNING id
                """,
                {"org_id": organization_id, "default_end": default_pilot_end, "now": now},
            )
            return cursor.fetchone() is not None

    def start_pilot(
        self,
        organization_id: str,
        *,
        tier: PlanTier,
        pilot_start_at: datetime,
        pilot_end_at: datetime,
    ) -> Optional[Organization]:
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                UPDATE orgs
                SET plan_tier = %(tier)s,
                    pilot_start_at = %(start)s,
                    pilot_end_at = %(end)s
                WHERE id = %(org_id)s AND plan_status = 'pilot'
                RETURNING {_COLUMNS}
                """,
                {"org_id": organization_id, "tier": tier.value, "start": pilot_start_at, "end": pilot_end_at},
            )
            row = cursor.fetchone()
        return _row_to_organization(row) if row else None

    def mark_converted(
        self,
        organization_id: str,
        *,
        subscription_id: str,
        converted_at: datetime,
    ) -> Optional[Organization]:
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                UPDATE orgs
                SET plan_status = 'active',
                    converted_at = %(converted_at)s,
                    billing_subscription_id = %(subscription_id)s
                WHERE id = %(org_id)s AND plan_status IN ('pilot', 'locked')
                RETURNING {_COLUMNS}
                """,
                {"org_id": organization_id, "converted_at": converted_at, "subscription_id": subscription_id},
            )
            row = cursor.fetchone()
        return _row_to_organization(row) if row else None

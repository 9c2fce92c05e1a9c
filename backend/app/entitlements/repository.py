"""Persistence layer for entitlement grants.

Backed by the ``entitlements`` table::

    CREATE TABLE entitlements (
        id BIGSERIAL PRIMARY KEY,
        org_id TEXT NOT NULL REFERENCES orgs (id),
        feature TEXT NOT NULL,
        enabled BOOLEAN NOT NULL DEFAULT TRUE,
        value TEXT,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        UNIQUE (org_id, feature)
    );
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, List, Optional, Sequence

import psycopg2
import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from ..db import managed_connection
from ..errors import StoreUnavailable
from .models import EntitlementGrant


def _row_to_grant(row: dict) -> EntitlementGrant:
    return EntitlementGrant(
        organization_id=str(row["org_id"]),
        feature=row["feature"],
        enabled=bool(row["enabled"]),
        value=row.get("value"),
        updated_at=row["updated_at"],
    )


class PostgresEntitlementRepository:
    """Concrete repository reading and writing entitlement grants in PostgreSQL."""

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
            raise StoreUnavailable("Entitlement store is unavailable", operation="entitlements") from exc

    def get_grant(self, organization_id: str, feature: str) -> Optional[EntitlementGrant]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT org_id, feature, enabled, value, updated_at
                FROM entitlements
                WHERE org_id = %s AND feature = %s
                LIMIT 1
                """,
                (organization_id, feature),
            )
            row = cursor.fetchone()
            return _row_to_grant(row) if row else None

    def upsert_grants(self, grants: Sequence[EntitlementGrant]) -> Sequence[EntitlementGrant]:
        if not grants:
            return []
        stored: List[EntitlementGrant] = []
        with self._cursor() as cursor:
            for grant in grants:
                cursor.execute(
                    """
                    INSERT INTO entitlements (org_id, feature, enabled, value)
                    VALUES (%(org_id)s, %(feature)s, %(enabled)s, %(value)s)
                    ON CONFLICT (org_id, feature) DO UPDATE SET
                        enabled = EXCLUDED.enabled,
                        value = EXCLUDED.value,
                        updated_at = NOW()
                    RETURNING org_id, feature, enabled, value, updated_at
                    """,
                    {
                        "org_id": grant.organization_id,
                        "feature": grant.feature,
                        "enabled": grant.enabled,
                        "value": grant.value,
                    },
                )
                row = cursor.fetchone()
                if not row:
                    raise RuntimeError("Failed to persist entitlement grant")
                stored.append(_row_to_grant(row))
        return stored

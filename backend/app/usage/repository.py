"""PostgreSQL backed usage counters.

Backed by the ``usage_counters`` table::

    CREATE TABLE usage_counters (
        id BIGSERIAL PRIMARY KEY,
        org_id TEXT NOT NULL REFERENCES orgs (id),
        metric TEXT NOT NULL,
        day DATE NOT NULL,
        count INTEGER NOT NULL DEFAULT 0 CHECK (count >= 0),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        UNIQUE (org_id, metric, day)
    );
"""
from __future__ import annotations

from contextlib import contextmanager
from datetime import date
from typing import Iterator, Optional

import psycopg2
import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from ..db import managed_connection
from ..errors import StoreUnavailable
from .models import UsageReservation

# The row lock taken by ON CONFLICT serializes racers on the same key and the
# WHERE clause is re-checked against the latest row version.
_RESERVE_SQL = """
INSERT INTO usage_counters (org_id, metric, day, count)
VALUES (%(org_id)s, %(metric)s, %(day)s, 1)
ON CONFLICT (org_id, metric, day) DO UPDATE SET
    count = usage_counters.count + 1,
    updated_at = NOW()
WHERE usage_counters.count + 1 <= %(limit)s
RETURNING count
"""

_PEEK_SQL = """
SELECT count
FROM usage_counters
WHERE org_id = %s AND metric = %s AND day = %s
LIMIT 1
"""


class PostgresUsageCounterStore:
    """Counter store applying each reservation as one conditional upsert."""

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
            raise StoreUnavailable("Usage counter store is unavailable", operation="usage_counters") from exc

    def try_increment(self, organization_id: str, metric: str, day: date, limit: int) -> UsageReservation:
        with self._cursor() as cursor:
            if limit >= 1:
                cursor.execute(
                    _RESERVE_SQL,
                    {"org_id": organization_id, "metric": metric, "day": day, "limit": limit},
                )
                row = cursor.fetchone()
                if row:
                    return UsageReservation(
                        organization_id=organization_id,
                        metric=metric,
                        day=day,
                        accepted=True,
                        new_count=int(row["count"]),
                        limit=limit,
                    )
            current = self._fetch_count(cursor, organization_id, metric, day)
        return UsageReservation(
            organization_id=organization_id,
            metric=metric,
            day=day,
            accepted=False,
            new_count=current,
            limit=limit,
        )

    def peek(self, organization_id: str, metric: str, day: date) -> int:
        with self._cursor() as cursor:
            return self._fetch_count(cursor, organization_id, metric, day)

    @staticmethod
    def _fetch_count(cursor: PgCursor, organization_id: str, metric: str, day: date) -> int:
        cursor.execute(_PEEK_SQL, (organization_id, metric, day))
        row = cursor.fetchone()
        return int(row["count"]) if row else 0

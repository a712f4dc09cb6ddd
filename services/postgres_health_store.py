"""Read-only health store backed by the TimescaleDB/PostgreSQL database."""

from __future__ import annotations

import logging
from typing import AbstractSet, Any

import asyncpg

from db import connection_configured, db_session
from services.health_store import (
    MINDFUL_SESSION,
    AuthorizationOutcome,
    HealthStore,
    HealthStoreError,
    MindfulRecord,
    QueryOutcome,
    RecordTypeHandle,
    RecordTypeUnavailable,
    TimeRangePredicate,
)


logger = logging.getLogger(__name__)

RECORD_TABLES = {
    MINDFUL_SESSION: "mindful_sessions",
}


def _row_to_record(row: Any) -> MindfulRecord:
    return MindfulRecord(start_time=row["start_at"], end_time=row["end_at"])


class PostgresHealthStore(HealthStore):
    """Reads grants and mindful sessions; never writes.

    Expects ``health_read_grants(record_type, granted)`` and
    ``mindful_sessions(start_at, end_at)`` to exist already.
    """

    def is_data_available(self) -> bool:
        return connection_configured()

    def resolve_record_type(self, identifier: str) -> RecordTypeHandle:
        if identifier not in RECORD_TABLES:
            raise RecordTypeUnavailable(f"Unknown record type: {identifier}")
        return RecordTypeHandle(identifier=identifier)

    async def request_authorization(self, record_types: AbstractSet[RecordTypeHandle]) -> AuthorizationOutcome:
        identifiers = sorted(handle.identifier for handle in record_types)
        if not identifiers:
            return AuthorizationOutcome(granted=False, error=HealthStoreError("No record types requested"))
        try:
            async with db_session() as conn:
                rows = await conn.fetch(
                    "SELECT record_type, granted FROM health_read_grants WHERE record_type = ANY($1::text[])",
                    identifiers,
                )
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as exc:
            return AuthorizationOutcome(granted=False, error=HealthStoreError(f"Grant lookup failed: {exc}"))

        granted = {row["record_type"] for row in rows if row["granted"]}
        missing = [identifier for identifier in identifiers if identifier not in granted]
        if missing:
            logger.info(f"Read access not granted for: {', '.join(missing)}")
            return AuthorizationOutcome(granted=False)
        return AuthorizationOutcome(granted=True)

    async def execute_query(
        self,
        record_type: RecordTypeHandle,
        predicate: TimeRangePredicate | None,
        limit: int,
        sort: None = None,
    ) -> QueryOutcome:
        table = RECORD_TABLES.get(record_type.identifier)
        if table is None:
            return QueryOutcome(records=None, error=RecordTypeUnavailable(record_type.identifier))

        conditions = ["end_at IS NOT NULL"]
        params: list[Any] = []
        if predicate is not None:
            params.append(predicate.start)
            conditions.append(f"end_at > ${len(params)}")
            params.append(predicate.end)
            conditions.append(f"start_at < ${len(params)}")
        params.append(limit)
        query = f"SELECT start_at, end_at FROM {table} WHERE {' AND '.join(conditions)} LIMIT ${len(params)}"

        try:
            async with db_session() as conn:
                rows = await conn.fetch(query, *params)
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as exc:
            return QueryOutcome(records=None, error=HealthStoreError(f"Query failed: {exc}"))

        if rows is None:
            return QueryOutcome(records=None)
        return QueryOutcome(records=[_row_to_record(row) for row in rows])

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import AbstractSet, Any, List, Optional

from services.health_store import (
    AuthorizationOutcome,
    HealthStore,
    MindfulRecord,
    QueryOutcome,
    RecordTypeHandle,
    RecordTypeUnavailable,
    TimeRangePredicate,
)


EPOCH = datetime(2025, 1, 1, tzinfo=timezone.utc)


def record(start_sec: float, end_sec: float, base: datetime = EPOCH) -> MindfulRecord:
    return MindfulRecord(
        start_time=base + timedelta(seconds=start_sec),
        end_time=base + timedelta(seconds=end_sec),
    )


def _ensure_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return list(value)
    return [value]


@dataclass
class StubConnection:
    """Lightweight asyncpg.Connection stub for tests."""

    fetch_results: List[Any] = field(default_factory=list)
    fetch_error: Optional[BaseException] = None

    def __post_init__(self) -> None:
        self.fetch_results = _ensure_list(self.fetch_results)
        self.fetch_calls: List[tuple[str, tuple[Any, ...]]] = []
        self.closed = False

    async def fetch(self, query: str, *params: Any) -> Any:
        self.fetch_calls.append((query, params))
        if self.fetch_error is not None:
            raise self.fetch_error
        if self.fetch_results:
            return self.fetch_results.pop(0)
        return []

    async def close(self) -> None:
        self.closed = True


@dataclass
class FakeHealthStore(HealthStore):
    """In-memory host store that records every call made against it."""

    available: bool = True
    resolvable: bool = True
    granted: bool = True
    authorization_error: Optional[Exception] = None
    authorization_raises: Optional[Exception] = None
    records: Optional[List[MindfulRecord]] = field(default_factory=list)
    query_error: Optional[Exception] = None
    query_raises: Optional[BaseException] = None
    # Finish async operations on a worker thread, like a platform callback would.
    complete_on_thread: bool = False

    def __post_init__(self) -> None:
        self.calls: List[str] = []
        self.authorization_requests: List[AbstractSet[RecordTypeHandle]] = []
        self.queries: List[tuple[RecordTypeHandle, Optional[TimeRangePredicate], int, None]] = []
        self.worker_threads: List[int] = []

    async def _complete(self, value: Any) -> Any:
        if not self.complete_on_thread:
            return value

        def _on_worker() -> Any:
            self.worker_threads.append(threading.get_ident())
            return value

        return await asyncio.get_running_loop().run_in_executor(None, _on_worker)

    def is_data_available(self) -> bool:
        self.calls.append("is_data_available")
        return self.available

    def resolve_record_type(self, identifier: str) -> RecordTypeHandle:
        self.calls.append("resolve_record_type")
        if not self.resolvable:
            raise RecordTypeUnavailable(identifier)
        return RecordTypeHandle(identifier=identifier)

    async def request_authorization(self, record_types: AbstractSet[RecordTypeHandle]) -> AuthorizationOutcome:
        self.calls.append("request_authorization")
        self.authorization_requests.append(record_types)
        if self.authorization_raises is not None:
            raise self.authorization_raises
        return await self._complete(AuthorizationOutcome(granted=self.granted, error=self.authorization_error))

    async def execute_query(
        self,
        record_type: RecordTypeHandle,
        predicate: Optional[TimeRangePredicate],
        limit: int,
        sort: None = None,
    ) -> QueryOutcome:
        self.calls.append("execute_query")
        self.queries.append((record_type, predicate, limit, sort))
        if self.query_raises is not None:
            raise self.query_raises
        if self.records is None:
            return await self._complete(QueryOutcome(records=None, error=self.query_error))
        matching = [item for item in self.records if predicate is None or predicate.matches(item)]
        return await self._complete(QueryOutcome(records=matching[:limit], error=self.query_error))

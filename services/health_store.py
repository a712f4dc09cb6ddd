"""Host health-data store interface and the types that cross it."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import AbstractSet, Optional, Sequence, Union


MINDFUL_SESSION = "mindful_session"

# Largest sample count the host store accepts for a single query.
MAX_SAMPLE_LIMIT = 2147483647


class HealthStoreError(Exception):
    """Raised by store implementations when the platform itself fails."""


class RecordTypeUnavailable(HealthStoreError):
    """The store cannot resolve a record-type identifier."""


class ErrorKind(str, Enum):
    DATA_UNAVAILABLE = "data_unavailable"
    NOT_AUTHORIZED = "not_authorized"
    NO_SAMPLES = "no_samples"
    PLATFORM_ERROR = "platform_error"


@dataclass(frozen=True)
class Success:
    total_minutes: int


@dataclass(frozen=True)
class Failure:
    error: ErrorKind


AggregationResult = Union[Success, Failure]


@dataclass(frozen=True)
class MindfulRecord:
    start_time: datetime
    end_time: datetime


@dataclass(frozen=True)
class RecordTypeHandle:
    identifier: str


@dataclass(frozen=True)
class TimeRangePredicate:
    """Selects records whose interval intersects ``[start, end)``."""

    start: datetime
    end: datetime

    def matches(self, record: MindfulRecord) -> bool:
        return record.end_time > self.start and record.start_time < self.end


@dataclass(frozen=True)
class AuthorizationOutcome:
    granted: bool
    error: Optional[Exception] = None


@dataclass(frozen=True)
class QueryOutcome:
    # ``None`` means the store produced no result container at all.
    records: Optional[Sequence[MindfulRecord]] = None
    error: Optional[Exception] = field(default=None)


class HealthStore(ABC):
    """Narrow view of the host platform's health store.

    Async operations may finish on any thread; callers must not assume the
    outcome arrives on their own event loop.
    """

    @abstractmethod
    def is_data_available(self) -> bool:
        ...

    @abstractmethod
    async def request_authorization(self, record_types: AbstractSet[RecordTypeHandle]) -> AuthorizationOutcome:
        ...

    @abstractmethod
    def resolve_record_type(self, identifier: str) -> RecordTypeHandle:
        """Return a handle for ``identifier`` or raise ``RecordTypeUnavailable``."""

    @abstractmethod
    async def execute_query(
        self,
        record_type: RecordTypeHandle,
        predicate: TimeRangePredicate | None,
        limit: int,
        sort: None = None,
    ) -> QueryOutcome:
        ...

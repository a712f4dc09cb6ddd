"""Mindful-minute aggregation over the host health store."""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from datetime import datetime, time, timezone
from enum import Enum
from typing import Callable, Iterable, Optional
from zoneinfo import ZoneInfo

from services.health_store import (
    MAX_SAMPLE_LIMIT,
    MINDFUL_SESSION,
    AggregationResult,
    AuthorizationOutcome,
    ErrorKind,
    Failure,
    HealthStore,
    HealthStoreError,
    MindfulRecord,
    QueryOutcome,
    RecordTypeUnavailable,
    Success,
    TimeRangePredicate,
)
from services.postgres_health_store import PostgresHealthStore


logger = logging.getLogger(__name__)

Completion = Callable[[AggregationResult], None]

_OPEN_START = datetime.min.replace(tzinfo=timezone.utc)
_OPEN_END = datetime.max.replace(tzinfo=timezone.utc)


class PipelineStage(str, Enum):
    IDLE = "idle"
    CHECKING_AVAILABILITY = "checking_availability"
    REQUESTING_AUTH = "requesting_auth"
    QUERYING = "querying"
    DONE = "done"


# Failure delivered when an unexpected exception escapes a stage.
STAGE_FAILURES = {
    PipelineStage.CHECKING_AVAILABILITY: ErrorKind.DATA_UNAVAILABLE,
    PipelineStage.REQUESTING_AUTH: ErrorKind.NOT_AUTHORIZED,
    PipelineStage.QUERYING: ErrorKind.NO_SAMPLES,
}


@dataclass
class _Progress:
    stage: PipelineStage = PipelineStage.IDLE

    def advance(self, stage: PipelineStage) -> None:
        self.stage = stage
        logger.debug(f"Mindful aggregation stage: {stage.value}")


def _now() -> datetime:
    return datetime.now().astimezone()


def start_of_day(ref: datetime) -> datetime:
    """Return midnight of ``ref``'s local day, carrying midnight's own UTC offset."""

    midnight = datetime.combine(ref.date(), time.min)
    if isinstance(ref.tzinfo, ZoneInfo):
        return midnight.replace(tzinfo=ref.tzinfo)
    if ref.astimezone().utcoffset() == ref.utcoffset():
        # ref is system local time; the system zone knows midnight's offset
        return midnight.astimezone()
    return midnight.replace(tzinfo=ref.tzinfo)


def today_window(now: datetime | None = None) -> tuple[datetime, datetime]:
    """Return ``(start of the current local day, now)``."""

    ref = now or _now()
    if ref.tzinfo is None:
        ref = ref.astimezone()
    return start_of_day(ref), ref


def _aware(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    # naive bounds are read as system local time
    return value.astimezone()


def build_predicate(window_start: datetime | None, window_end: datetime | None) -> TimeRangePredicate | None:
    if window_start is None and window_end is None:
        return None
    start = _aware(window_start) or _OPEN_START
    end = _aware(window_end) or _OPEN_END
    if end < start:
        raise ValueError(f"window_end {end.isoformat()} precedes window_start {start.isoformat()}")
    return TimeRangePredicate(start=start, end=end)


def total_minutes(records: Iterable[MindfulRecord]) -> int:
    """Sum record durations in real seconds, then floor to whole minutes."""

    elapsed = sum((record.end_time - record.start_time).total_seconds() for record in records)
    return max(0, math.floor(elapsed / 60))


class MindfulAggregationService:
    """Authorize, query and reduce mindful-session records.

    Holds no aggregation state between calls; concurrent invocations are
    independent. Callback completions always run on the delivery loop, which is
    either pinned at construction or taken from the caller's running loop.
    """

    def __init__(self, store: HealthStore, *, delivery_loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._store = store
        self._delivery_loop = delivery_loop
        self._in_flight: set[asyncio.Task[None]] = set()

    @property
    def store(self) -> HealthStore:
        return self._store

    async def aggregate(
        self,
        window_start: datetime | None = None,
        window_end: datetime | None = None,
    ) -> AggregationResult:
        return await self._run(build_predicate(window_start, window_end))

    async def aggregate_for_today(self) -> AggregationResult:
        return await self.aggregate(*today_window())

    def total_mindful_minutes(
        self,
        completion: Completion,
        window_start: datetime | None = None,
        window_end: datetime | None = None,
    ) -> None:
        predicate = build_predicate(window_start, window_end)
        loop = self._resolve_delivery_loop()
        loop.call_soon_threadsafe(self._start, loop, predicate, completion)

    def total_mindful_minutes_for_today(self, completion: Completion) -> None:
        self.total_mindful_minutes(completion, *today_window())

    def _resolve_delivery_loop(self) -> asyncio.AbstractEventLoop:
        if self._delivery_loop is not None:
            return self._delivery_loop
        try:
            return asyncio.get_running_loop()
        except RuntimeError as exc:
            raise RuntimeError("No delivery loop pinned and no event loop running in this thread") from exc

    def _start(
        self,
        loop: asyncio.AbstractEventLoop,
        predicate: TimeRangePredicate | None,
        completion: Completion,
    ) -> None:
        task = loop.create_task(self._deliver(loop, predicate, completion))
        self._in_flight.add(task)
        task.add_done_callback(self._finished)

    async def _deliver(
        self,
        loop: asyncio.AbstractEventLoop,
        predicate: TimeRangePredicate | None,
        completion: Completion,
    ) -> None:
        progress = _Progress()
        try:
            result = await self._run(predicate, progress)
        except Exception:
            logger.exception(f"Mindful aggregation failed while {progress.stage.value}")
            result = self._done(Failure(STAGE_FAILURES.get(progress.stage, ErrorKind.PLATFORM_ERROR)))
        loop.call_soon(completion, result)

    def _finished(self, task: asyncio.Task[None]) -> None:
        self._in_flight.discard(task)

    async def _run(self, predicate: TimeRangePredicate | None, progress: _Progress | None = None) -> AggregationResult:
        progress = progress or _Progress()
        progress.advance(PipelineStage.CHECKING_AVAILABILITY)
        if not self._store.is_data_available():
            return self._done(Failure(ErrorKind.DATA_UNAVAILABLE))

        progress.advance(PipelineStage.REQUESTING_AUTH)
        try:
            record_type = self._store.resolve_record_type(MINDFUL_SESSION)
        except RecordTypeUnavailable as exc:
            logger.warning(f"Cannot resolve record type {MINDFUL_SESSION!r}: {exc}")
            return self._done(Failure(ErrorKind.PLATFORM_ERROR))

        try:
            authorization = await self._store.request_authorization({record_type})
        except HealthStoreError as exc:
            authorization = AuthorizationOutcome(granted=False, error=exc)
        if not authorization.granted:
            if authorization.error is not None:
                logger.warning(f"Authorization request failed: {authorization.error}")
            return self._done(Failure(ErrorKind.NOT_AUTHORIZED))

        progress.advance(PipelineStage.QUERYING)
        try:
            outcome = await self._store.execute_query(record_type, predicate, MAX_SAMPLE_LIMIT, sort=None)
        except HealthStoreError as exc:
            outcome = QueryOutcome(records=None, error=exc)
        if outcome.error is not None or outcome.records is None:
            if outcome.error is not None:
                logger.warning(f"Mindful session query failed: {outcome.error}")
            return self._done(Failure(ErrorKind.NO_SAMPLES))

        if not outcome.records:
            return self._done(Success(0))
        return self._done(Success(total_minutes(outcome.records)))

    @staticmethod
    def _done(result: AggregationResult) -> AggregationResult:
        logger.debug(f"Mindful aggregation stage: {PipelineStage.DONE.value} -> {result}")
        return result


_default_service: Optional[MindfulAggregationService] = None


def get_default_service() -> MindfulAggregationService:
    """Return the process-wide service backed by the configured database."""

    global _default_service
    if _default_service is None:
        _default_service = MindfulAggregationService(PostgresHealthStore())
    return _default_service

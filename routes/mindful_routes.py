"""Mindful minutes API endpoints."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, HTTPException, status

from schemas.mindful_schemas import MindfulErrorOut, MindfulMinutesOut
from services.health_store import AggregationResult, ErrorKind, Failure
from services.mindful_service import get_default_service, today_window

router = APIRouter(prefix="/mindful", tags=["Mindful Minutes"])


ERROR_STATUS = {
	ErrorKind.DATA_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
	ErrorKind.NOT_AUTHORIZED: status.HTTP_403_FORBIDDEN,
	ErrorKind.NO_SAMPLES: status.HTTP_404_NOT_FOUND,
	ErrorKind.PLATFORM_ERROR: status.HTTP_502_BAD_GATEWAY,
}

ERROR_MESSAGES = {
	ErrorKind.DATA_UNAVAILABLE: "Health data is not available on this configuration",
	ErrorKind.NOT_AUTHORIZED: "Read access to mindful sessions has not been granted",
	ErrorKind.NO_SAMPLES: "The health store returned no result for mindful sessions",
	ErrorKind.PLATFORM_ERROR: "The health store cannot resolve the mindful session record type",
}


def _to_response(
	result: AggregationResult,
	window_start: datetime | None = None,
	window_end: datetime | None = None,
) -> MindfulMinutesOut:
	if isinstance(result, Failure):
		detail = MindfulErrorOut(error=result.error, message=ERROR_MESSAGES[result.error])
		raise HTTPException(status_code=ERROR_STATUS[result.error], detail=detail.model_dump(mode="json"))
	return MindfulMinutesOut(total_minutes=result.total_minutes, window_start=window_start, window_end=window_end)


@router.get("/minutes", response_model=MindfulMinutesOut)
async def get_total_minutes() -> MindfulMinutesOut:
	result = await get_default_service().aggregate()
	return _to_response(result)


@router.get("/minutes/today", response_model=MindfulMinutesOut)
async def get_today_minutes() -> MindfulMinutesOut:
	start, end = today_window()
	result = await get_default_service().aggregate(start, end)
	return _to_response(result, start, end)

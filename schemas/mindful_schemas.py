from datetime import datetime

from pydantic import BaseModel, Field

from services.health_store import ErrorKind


class MindfulMinutesOut(BaseModel):
	total_minutes: int = Field(..., ge=0)
	window_start: datetime | None = None
	window_end: datetime | None = None


class MindfulErrorOut(BaseModel):
	error: ErrorKind
	message: str

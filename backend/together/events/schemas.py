"""Pydantic schemas for calendar events."""
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Stored timestamps are naive UTC."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def check_event_range(start: Optional[datetime], end: Optional[datetime]) -> None:
    if start is not None and end is not None and end < start:
        raise ValueError("End date must be after start date")


class EventCreate(BaseModel):
    """Request body for creating an event."""
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    startDate: datetime
    endDate: Optional[datetime] = None
    location: Optional[str] = None

    normalize_dates = field_validator("startDate", "endDate")(to_naive_utc)

    @model_validator(mode="after")
    def _end_after_start(self) -> "EventCreate":
        check_event_range(self.startDate, self.endDate)
        return self


class EventUpdate(BaseModel):
    """Partial update; the merged start/end range is checked by the service."""
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    startDate: Optional[datetime] = None
    endDate: Optional[datetime] = None
    location: Optional[str] = None

    normalize_dates = field_validator("startDate", "endDate")(to_naive_utc)

    @model_validator(mode="after")
    def _end_after_start(self) -> "EventUpdate":
        check_event_range(self.startDate, self.endDate)
        return self

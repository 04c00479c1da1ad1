"""Pydantic schemas for schedule slots.

Times are ``H.MM`` / ``HH.MM`` strings (``9.30``, ``18.00``), as entered by
the clients.
"""
import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

TIME_PATTERN = r"^\d{1,2}\.\d{2}$"
NOTE_MAX_LENGTH = 500

Category = Literal[
    "Hangout",
    "Meeting",
    "Cooking",
    "Party",
    "Family",
    "Appointment",
    "Birthday",
    "Exercise",
    "Study",
    "Shopping",
    "Weekend",
    "Other",
]


class ScheduleCreate(BaseModel):
    date: datetime.date
    startTime: str = Field(..., pattern=TIME_PATTERN)
    endTime: str = Field(..., pattern=TIME_PATTERN)
    category: Category
    note: Optional[str] = Field(default=None, max_length=NOTE_MAX_LENGTH)


class ScheduleUpdate(BaseModel):
    """Partial update; omitted fields keep their value."""
    date: Optional[datetime.date] = None
    startTime: Optional[str] = Field(default=None, pattern=TIME_PATTERN)
    endTime: Optional[str] = Field(default=None, pattern=TIME_PATTERN)
    category: Optional[Category] = None
    note: Optional[str] = Field(default=None, max_length=NOTE_MAX_LENGTH)

"""Value types shared by the conflict checks, the survey and the repair search."""
import datetime as dt
from typing import List

from pydantic import BaseModel, Field, field_serializer, field_validator, model_validator


def _coerce_clock(value):
    # Models often write "9:00"; pydantic's time parser wants two-digit hours.
    if isinstance(value, str):
        value = value.strip()
        if len(value) == 4 and value[1] == ":":
            return "0" + value
    return value


class PlannedSession(BaseModel):
    """One study block proposed by the model (or found by the repair search)."""
    date: dt.date = Field(description="Session date in YYYY-MM-DD format")
    start_time: dt.time = Field(description="Start time in HH:MM format (24-hour)")
    end_time: dt.time = Field(description="End time in HH:MM format (24-hour)")
    title: str = Field(description='Session title, e.g. "Mathematics - Chapter 1: Session 1"')
    chapter_number: int = Field(description="Chapter number (1-based)")
    session_number: int = Field(description="Session number within the chapter (1-based)")
    topics: List[str] = Field(default_factory=list, description="Topics to cover in this session")

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def normalize_clock(cls, value):
        return _coerce_clock(value)

    @model_validator(mode="after")
    def check_end_after_start(self) -> "PlannedSession":
        if self.end_time <= self.start_time:
            raise ValueError(
                f"end_time {self.end_time:%H:%M} must be after start_time {self.start_time:%H:%M}"
            )
        return self

    @field_serializer("start_time", "end_time")
    def serialize_clock(self, value: dt.time) -> str:
        return value.strftime("%H:%M")

    @property
    def duration_minutes(self) -> int:
        return (self.end_time.hour * 60 + self.end_time.minute) - (self.start_time.hour * 60 + self.start_time.minute)


class ConflictDetail(BaseModel):
    """An existing event overlapping a candidate slot."""
    event_id: int
    title: str
    start_time: str
    end_time: str
    subject: str
    is_same_subject: bool


class ConflictInfo(BaseModel):
    """Result of checking one candidate slot against the calendar."""
    has_conflict: bool = False
    conflict_count: int = 0
    conflicts: List[ConflictDetail] = Field(default_factory=list)
    suggestion: str = ""


class ConflictRecord(BaseModel):
    """A proposed session that failed bulk validation."""
    session_index: int = Field(description="Position of the session in the submitted array")
    date: dt.date
    start_time: dt.time
    end_time: dt.time
    title: str
    conflict_with: str = Field(description="Human-readable description of the blocking event")

    @field_serializer("start_time", "end_time")
    def serialize_clock(self, value: dt.time) -> str:
        return value.strftime("%H:%M")


class TimeSlot(BaseModel):
    start: str
    end: str


class BusyPeriod(BaseModel):
    """How busy one calendar day already is."""
    date: dt.date
    event_count: int
    time_slots: List[TimeSlot] = Field(default_factory=list)

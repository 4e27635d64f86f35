from datetime import date, datetime

from pydantic import BaseModel, Field, field_validator

from event_scheduler.models.events import EventStatus, EventType, OrganizerType, RecurrencePattern
from event_scheduler.schemas.attendees import AttendeeOut
from event_scheduler.services.validation import normalize_time


def _normalize_time(value: str | None) -> str | None:
    if value is None:
        return value
    return normalize_time(value)


# ---------- Event ----------
class EventCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    event_type: EventType
    start_date: date | None = None
    end_date: date | None = None
    start_time: str | None = Field(default=None, examples=["09:30"])
    end_time: str | None = Field(default=None, examples=["11:00"])
    session_duration_minutes: int | None = Field(default=None, ge=1)
    location: str | None = Field(default=None, max_length=500)
    cover_url: str | None = Field(default=None, max_length=500)
    is_public: bool = True
    max_participants: int | None = Field(default=None, ge=1)

    organizer_type: OrganizerType
    organizer_user_id: int | None = None
    organizer_division_id: int | None = None
    organizer_club_id: int | None = None
    external_organizer_name: str | None = Field(default=None, min_length=1, max_length=255)

    is_recurring: bool = False
    recurrence_pattern: RecurrencePattern | None = None
    recurrence_interval: int | None = Field(default=None, ge=1)
    recurrence_start_date: date | None = None
    recurrence_end_date: date | None = None
    recurrence_days: str | None = Field(default=None, max_length=32, examples=["1,3,5"])

    normalize_times = field_validator("start_time", "end_time")(_normalize_time)


class EventUpdate(BaseModel):
    """Merge-patch body: only fields present in the request are applied."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    status: EventStatus | None = None
    event_type: EventType | None = None
    start_date: date | None = None
    end_date: date | None = None
    start_time: str | None = None
    end_time: str | None = None
    session_duration_minutes: int | None = Field(default=None, ge=1)
    location: str | None = Field(default=None, max_length=500)
    cover_url: str | None = Field(default=None, max_length=500)
    is_public: bool | None = None
    max_participants: int | None = Field(default=None, ge=1)

    organizer_type: OrganizerType | None = None
    organizer_user_id: int | None = None
    organizer_division_id: int | None = None
    organizer_club_id: int | None = None
    external_organizer_name: str | None = Field(default=None, max_length=255)

    is_recurring: bool | None = None
    recurrence_pattern: RecurrencePattern | None = None
    recurrence_interval: int | None = Field(default=None, ge=1)
    recurrence_start_date: date | None = None
    recurrence_end_date: date | None = None
    recurrence_days: str | None = Field(default=None, max_length=32)

    normalize_times = field_validator("start_time", "end_time")(_normalize_time)


class EventOut(BaseModel):
    id: int
    name: str
    description: str | None
    event_type: str
    status: str
    location: str | None
    cover_url: str | None
    start_date: date | None
    end_date: date | None
    start_time: str | None
    end_time: str | None
    session_duration_minutes: int | None
    is_recurring: bool
    recurrence_pattern: str | None
    recurrence_interval: int | None
    recurrence_start_date: date | None
    recurrence_end_date: date | None
    recurrence_days: str | None
    is_public: bool
    max_participants: int | None
    organizer_type: str
    organizer_user_id: int | None
    organizer_division_id: int | None
    organizer_club_id: int | None
    external_organizer_name: str | None
    user_id: int
    created_at: datetime | None
    updated_at: datetime | None

    class Config:
        from_attributes = True


class EventSessionOut(BaseModel):
    id: int
    event_id: int
    session_date: date
    start_time: str
    end_time: str
    is_cancelled: bool
    cancellation_reason: str | None

    class Config:
        from_attributes = True


class EventStatsOut(BaseModel):
    event_id: int
    max_participants: int | None
    total_attendees: int
    registered_attendees: int
    cancelled_attendees: int
    available_slots: int | None


class EventDetailOut(BaseModel):
    event: EventOut
    sessions: list[EventSessionOut] | None = None
    attendees: list[AttendeeOut] | None = None
    statistics: EventStatsOut | None = None


class EventPage(BaseModel):
    items: list[EventOut]
    total: int
    page: int
    limit: int
    pages: int

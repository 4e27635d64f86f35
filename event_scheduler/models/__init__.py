from event_scheduler.models.attendees import AttendeeStatus, EventAttendee
from event_scheduler.models.events import (
    Event,
    EventSession,
    EventStatus,
    EventType,
    OrganizerType,
    RecurrencePattern,
)

__all__ = [
    "AttendeeStatus",
    "Event",
    "EventAttendee",
    "EventSession",
    "EventStatus",
    "EventType",
    "OrganizerType",
    "RecurrencePattern",
]

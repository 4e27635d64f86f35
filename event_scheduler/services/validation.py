"""
Structural validation of event field sets.

Validation works on a plain mapping of column name to value so the same rules
apply to a new event and to an existing event merged with a partial update.
"""
import re
from dataclasses import dataclass
from datetime import date
from typing import Any, Mapping, Union

from event_scheduler.models.events import EventType, OrganizerType, RecurrencePattern
from event_scheduler.services.errors import InvalidEventData
from event_scheduler.services.recurrence import parse_recurrence_days

TIME_PATTERN = re.compile(r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$")

# Columns that may be omitted but never cleared
NON_NULLABLE_FIELDS = ("status", "is_public", "is_recurring")

ORGANIZER_FIELDS = {
    OrganizerType.USER: "organizer_user_id",
    OrganizerType.DIVISION: "organizer_division_id",
    OrganizerType.CLUB: "organizer_club_id",
    OrganizerType.EXTERNAL: "external_organizer_name",
}


@dataclass(frozen=True)
class UserOrganizer:
    user_id: int
    type = OrganizerType.USER


@dataclass(frozen=True)
class DivisionOrganizer:
    division_id: int
    type = OrganizerType.DIVISION


@dataclass(frozen=True)
class ClubOrganizer:
    club_id: int
    type = OrganizerType.CLUB


@dataclass(frozen=True)
class ExternalOrganizer:
    name: str
    type = OrganizerType.EXTERNAL


Organizer = Union[UserOrganizer, DivisionOrganizer, ClubOrganizer, ExternalOrganizer]

_ORGANIZER_CLASSES = {
    OrganizerType.USER: UserOrganizer,
    OrganizerType.DIVISION: DivisionOrganizer,
    OrganizerType.CLUB: ClubOrganizer,
    OrganizerType.EXTERNAL: ExternalOrganizer,
}


def normalize_time(value: str) -> str:
    """Zero-pad a valid ``H:MM`` / ``HH:MM`` string."""
    if not TIME_PATTERN.match(value):
        raise ValueError("time must be in HH:MM format")
    hours, minutes = value.split(":")
    return f"{int(hours):02d}:{minutes}"


def organizer_from_fields(fields: Mapping[str, Any]) -> Organizer:
    """Build the organizer variant, requiring exactly the matching reference field."""
    try:
        organizer_type = OrganizerType(fields.get("organizer_type"))
    except ValueError:
        raise InvalidEventData("Invalid organizer type", field="organizer_type")

    expected = ORGANIZER_FIELDS[organizer_type]
    populated = {name for name in ORGANIZER_FIELDS.values() if fields.get(name) not in (None, "")}
    if populated != {expected}:
        raise InvalidEventData(
            f"For {organizer_type.value} organizer type, only {expected} should be set",
            field=expected,
        )
    return _ORGANIZER_CLASSES[organizer_type](fields[expected])


def organizer_columns(organizer: Organizer) -> dict[str, Any]:
    """Flatten an organizer into column values with every other reference cleared."""
    columns: dict[str, Any] = {name: None for name in ORGANIZER_FIELDS.values()}
    columns["organizer_type"] = organizer.type.value
    columns[ORGANIZER_FIELDS[organizer.type]] = next(iter(vars(organizer).values()))
    return columns


def _validate_dates_and_times(fields: Mapping[str, Any], today: date | None) -> None:
    start_date, end_date = fields.get("start_date"), fields.get("end_date")
    start_time, end_time = fields.get("start_time"), fields.get("end_time")

    if start_date and end_date and start_date > end_date:
        raise InvalidEventData("Start date must be before or equal to end date", field="end_date")

    for name, value in (("start_time", start_time), ("end_time", end_time)):
        if value is not None and not TIME_PATTERN.match(value):
            raise InvalidEventData(f"{name} must be in HH:MM format", field=name)

    if start_time and end_time and normalize_time(start_time) >= normalize_time(end_time):
        raise InvalidEventData("Start time must be before end time", field="end_time")

    if today is not None and start_date and start_date < today:
        raise InvalidEventData("Cannot create events in the past", field="start_date")

    for name in ("max_participants", "session_duration_minutes"):
        value = fields.get(name)
        if value is not None and value < 1:
            raise InvalidEventData(f"{name} must be at least 1", field=name)


def _validate_event_type_rules(fields: Mapping[str, Any]) -> None:
    event_type = fields.get("event_type")
    is_recurring = bool(fields.get("is_recurring"))

    if event_type == EventType.SINGLE.value:
        start_date, end_date = fields.get("start_date"), fields.get("end_date")
        if start_date and end_date and start_date != end_date:
            raise InvalidEventData("SINGLE events must have the same start and end date", field="end_date")
        if is_recurring:
            raise InvalidEventData("SINGLE events cannot be recurring", field="is_recurring")
    elif event_type in (EventType.COURSE.value, EventType.WORKSHOP.value):
        if is_recurring:
            raise InvalidEventData("COURSE and WORKSHOP events cannot be recurring", field="is_recurring")
    elif event_type == EventType.RECURRING.value and not is_recurring:
        raise InvalidEventData("RECURRING events must have is_recurring set to true", field="is_recurring")


def _validate_recurrence(fields: Mapping[str, Any]) -> None:
    pattern = fields.get("recurrence_pattern")
    if not pattern:
        raise InvalidEventData("Recurrence pattern is required for recurring events", field="recurrence_pattern")
    try:
        pattern = RecurrencePattern(pattern)
    except ValueError:
        raise InvalidEventData("Invalid recurrence pattern", field="recurrence_pattern")

    start, end = fields.get("recurrence_start_date"), fields.get("recurrence_end_date")
    if not start or not end:
        raise InvalidEventData(
            "Recurrence start and end dates are required for recurring events",
            field="recurrence_start_date" if not start else "recurrence_end_date",
        )
    if start >= end:
        raise InvalidEventData("Recurrence start date must be before end date", field="recurrence_end_date")

    interval = fields.get("recurrence_interval")
    if interval is None or interval < 1:
        raise InvalidEventData("Recurrence interval must be at least 1", field="recurrence_interval")

    days = fields.get("recurrence_days")
    if pattern == RecurrencePattern.CUSTOM and not days:
        raise InvalidEventData("Recurrence days are required for CUSTOM pattern", field="recurrence_days")
    try:
        parse_recurrence_days(days)
    except ValueError:
        raise InvalidEventData(
            "Recurrence days must be numbers between 1-7 (1=Monday, 7=Sunday)",
            field="recurrence_days",
        )


def validate_event_fields(fields: Mapping[str, Any], *, today: date | None = None) -> Organizer:
    """Check the structural invariants of an event and return its organizer.

    ``today`` enables the no-past-dates rule; pass ``None`` to skip it.
    Raises ``InvalidEventData`` on the first violation found.
    """
    if not fields.get("name"):
        raise InvalidEventData("Event name is required", field="name")
    if fields.get("event_type") not in {t.value for t in EventType}:
        raise InvalidEventData("Event type is required", field="event_type")
    for name in NON_NULLABLE_FIELDS:
        if name in fields and fields[name] is None:
            raise InvalidEventData(f"{name} cannot be null", field=name)
    if not fields.get("organizer_type"):
        raise InvalidEventData("Organizer type is required", field="organizer_type")

    organizer = organizer_from_fields(fields)
    _validate_dates_and_times(fields, today)
    _validate_event_type_rules(fields)
    if fields.get("is_recurring"):
        _validate_recurrence(fields)
    return organizer

"""
Event lifecycle: creation, merge-patch updates, deletion and session
materialization.

Checks run in a fixed order: permission, structural validation, schedule
conflicts, then persistence. Nothing is written before the first three pass.
The conflict check and the insert are separate statements, so two concurrent
requests for overlapping windows can both succeed.
"""
import enum
import logging
import math
from datetime import date
from typing import Any, Mapping

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from event_scheduler.core.permissions import EventAction, PermissionChecker
from event_scheduler.models.attendees import AttendeeStatus, EventAttendee
from event_scheduler.models.events import Event, EventSession, EventStatus
from event_scheduler.services.conflicts import find_conflicts
from event_scheduler.services.errors import (
    EventHasAttendees,
    EventNotFound,
    Forbidden,
    ScheduleConflict,
    SessionGenerationFailed,
    storage_errors,
)
from event_scheduler.services.recurrence import format_recurrence_days, occurrences_for_event, parse_recurrence_days
from event_scheduler.services.registrations import count_registered, get_event_stats
from event_scheduler.services.validation import (
    TIME_PATTERN,
    normalize_time,
    organizer_columns,
    validate_event_fields,
)

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    "name",
    "description",
    "event_type",
    "status",
    "location",
    "cover_url",
    "start_date",
    "end_date",
    "start_time",
    "end_time",
    "session_duration_minutes",
    "is_recurring",
    "recurrence_pattern",
    "recurrence_interval",
    "recurrence_start_date",
    "recurrence_end_date",
    "recurrence_days",
    "is_public",
    "max_participants",
    "organizer_type",
    "organizer_user_id",
    "organizer_division_id",
    "organizer_club_id",
    "external_organizer_name",
)

# Changing any of these rebuilds the event's sessions
SESSION_FIELDS = frozenset(
    {
        "event_type",
        "start_date",
        "end_date",
        "start_time",
        "end_time",
        "session_duration_minutes",
        "is_recurring",
        "recurrence_pattern",
        "recurrence_interval",
        "recurrence_start_date",
        "recurrence_end_date",
        "recurrence_days",
    }
)

# Locked while registered attendees exist
RESTRICTED_RECURRENCE_FIELDS = ("recurrence_pattern", "recurrence_start_date", "recurrence_end_date")


def _column_values(data: Mapping[str, Any]) -> dict[str, Any]:
    values = {}
    for key, value in data.items():
        if key not in EDITABLE_FIELDS:
            continue
        if isinstance(value, enum.Enum):
            value = value.value
        # malformed times and weekday lists are left as-is for validation to reject
        if key in ("start_time", "end_time") and value and TIME_PATTERN.match(value):
            value = normalize_time(value)
        if key == "recurrence_days" and value:
            try:
                value = format_recurrence_days(parse_recurrence_days(value))
            except ValueError:
                pass
        values[key] = value
    return values


def _snapshot(event: Event) -> dict[str, Any]:
    return {name: getattr(event, name) for name in EDITABLE_FIELDS}


def _check_permission(permissions: PermissionChecker, user_id: int, action: EventAction) -> None:
    if not permissions.has_permission(user_id, action):
        logger.warning("User %s denied %s", user_id, action.value)
        raise Forbidden("You don't have permission to perform this operation", action=action.value)


def _check_owner(event: Event, user_id: int) -> None:
    if event.user_id != user_id:
        raise Forbidden("Only the event creator can perform this operation", event_id=event.id)


def _check_no_conflicts(db: Session, fields: Mapping[str, Any], exclude_event_id: int | None = None) -> None:
    start_date, start_time, end_time = fields.get("start_date"), fields.get("start_time"), fields.get("end_time")
    if not (start_date and start_time and end_time):
        return
    conflicts = find_conflicts(
        db,
        candidate_date=start_date,
        candidate_start=start_time,
        candidate_end=end_time,
        exclude_event_id=exclude_event_id,
    )
    if conflicts:
        first = conflicts[0]
        logger.warning("Schedule conflict on %s %s-%s with event %s", start_date, start_time, end_time, first.id)
        raise ScheduleConflict(first.id, first.name)


def get_event_or_404(db: Session, event_id: int) -> Event:
    event = db.get(Event, event_id)
    if event is None:
        raise EventNotFound(event_id)
    return event


def _generate_sessions(db: Session, event: Event) -> list[EventSession]:
    """Expand and persist sessions; the event row is already committed."""
    event_id = event.id
    try:
        occurrences = occurrences_for_event(event)
        sessions = [
            EventSession(
                event_id=event_id,
                session_date=occurrence.session_date,
                start_time=occurrence.start_time,
                end_time=occurrence.end_time,
                is_cancelled=False,
            )
            for occurrence in occurrences
        ]
        db.add_all(sessions)
        db.commit()
    except Exception as e:
        db.rollback()
        logger.exception("Session generation failed for event %s", event_id)
        raise SessionGenerationFailed(event_id, str(e)) from e

    if not sessions:
        logger.info("Event %s has no schedulable date/time window, no sessions created", event_id)
    return sessions


def _discard_sessions(db: Session, event_id: int) -> None:
    db.execute(delete(EventSession).where(EventSession.event_id == event_id))


def create_event(
    db: Session,
    data: Mapping[str, Any],
    *,
    user_id: int,
    permissions: PermissionChecker,
    today: date | None = None,
) -> Event:
    """Validate, conflict-check and persist a new DRAFT event, then build its sessions."""
    _check_permission(permissions, user_id, EventAction.CREATE)

    fields = _column_values(data)
    fields.setdefault("is_recurring", False)
    if fields["is_recurring"] and fields.get("recurrence_interval") is None:
        fields["recurrence_interval"] = 1

    organizer = validate_event_fields(fields, today=today or date.today())
    fields.update(organizer_columns(organizer))

    with storage_errors(db, "creating event"):
        _check_no_conflicts(db, fields)

        fields["status"] = EventStatus.DRAFT.value
        event = Event(**fields, user_id=user_id)
        db.add(event)
        db.commit()
        db.refresh(event)

    logger.info("Created event %s (%s) for user %s", event.id, event.event_type, user_id)
    _generate_sessions(db, event)
    return event


def update_event(
    db: Session,
    event_id: int,
    patch: Mapping[str, Any],
    *,
    user_id: int,
    permissions: PermissionChecker,
    today: date | None = None,
) -> Event:
    """Apply a merge-patch to an event.

    Only keys present in ``patch`` change; an explicit ``None`` clears a field.
    The merged result must satisfy the same invariants as a new event.
    """
    with storage_errors(db, "loading event"):
        event = get_event_or_404(db, event_id)
    _check_permission(permissions, user_id, EventAction.UPDATE)
    _check_owner(event, user_id)

    changes = _column_values(patch)
    if not changes:
        return event

    with storage_errors(db, "updating event"):
        if any(changes.get(name) is not None for name in RESTRICTED_RECURRENCE_FIELDS):
            if count_registered(db, event_id) > 0:
                raise EventHasAttendees(
                    "Cannot modify recurrence settings when there are registered attendees",
                    event_id=event_id,
                )

        before = _snapshot(event)
        candidate = {**before, **changes}
        if candidate.get("is_recurring") and candidate.get("recurrence_interval") is None:
            changes["recurrence_interval"] = candidate["recurrence_interval"] = 1

        # past dates are only rejected when the start date itself moves
        moved = "start_date" in changes and changes["start_date"] != before["start_date"]
        validate_event_fields(candidate, today=(today or date.today()) if moved else None)
        _check_no_conflicts(db, candidate, exclude_event_id=event_id)

        for name, value in changes.items():
            setattr(event, name, value)
        db.commit()
        db.refresh(event)

    changed = {name for name in changes if changes[name] != before[name]}
    logger.info("Updated event %s fields %s", event_id, sorted(changed))

    if changed & SESSION_FIELDS:
        with storage_errors(db, "discarding sessions"):
            _discard_sessions(db, event_id)
            db.commit()
        _generate_sessions(db, event)
    return event


def regenerate_sessions(db: Session, event_id: int) -> list[EventSession]:
    """Discard and rebuild an event's sessions without touching the event row."""
    with storage_errors(db, "regenerating sessions"):
        event = get_event_or_404(db, event_id)
        _discard_sessions(db, event_id)
        db.commit()
    sessions = _generate_sessions(db, event)
    logger.info("Regenerated %d sessions for event %s", len(sessions), event_id)
    return sessions


def delete_event(db: Session, event_id: int, *, user_id: int, permissions: PermissionChecker) -> None:
    """Delete an event after its sessions and attendee records."""
    with storage_errors(db, "loading event"):
        event = get_event_or_404(db, event_id)
    _check_permission(permissions, user_id, EventAction.DELETE)
    _check_owner(event, user_id)

    with storage_errors(db, "deleting event"):
        if count_registered(db, event_id) > 0:
            raise EventHasAttendees(
                "Cannot delete event with registered attendees. Please archive the event instead.",
                event_id=event_id,
            )
        _discard_sessions(db, event_id)
        db.execute(delete(EventAttendee).where(EventAttendee.event_id == event_id))
        db.delete(event)
        db.commit()
    logger.info("Deleted event %s", event_id)


def list_sessions(db: Session, event_id: int) -> list[EventSession]:
    with storage_errors(db, "listing sessions"):
        get_event_or_404(db, event_id)
        stmt = (
            select(EventSession)
            .where(EventSession.event_id == event_id)
            .order_by(EventSession.session_date, EventSession.start_time)
        )
        return list(db.scalars(stmt))


def get_event(
    db: Session,
    event_id: int,
    *,
    include_sessions: bool = False,
    include_attendees: bool = False,
    include_statistics: bool = False,
) -> dict:
    with storage_errors(db, "getting event"):
        event = get_event_or_404(db, event_id)
        result: dict[str, Any] = {"event": event}
        if include_sessions:
            result["sessions"] = list_sessions(db, event_id)
        if include_attendees:
            stmt = (
                select(EventAttendee)
                .where(EventAttendee.event_id == event_id)
                .order_by(EventAttendee.created_at.desc(), EventAttendee.id.desc())
            )
            result["attendees"] = list(db.scalars(stmt))
        if include_statistics:
            result["statistics"] = get_event_stats(db, event_id)
        return result


def list_events(
    db: Session,
    *,
    user_id: int | None = None,
    status: str | None = None,
    event_type: str | None = None,
    organizer_type: str | None = None,
    organizer_id: int | None = None,
    is_public: bool | None = None,
    upcoming_only: bool = False,
    start_date: date | None = None,
    end_date: date | None = None,
    page: int = 1,
    limit: int = 10,
    today: date | None = None,
) -> dict:
    """Filtered, paginated listing. Filters combine with AND."""
    stmt = select(Event)
    if user_id is not None:
        stmt = stmt.where(Event.user_id == user_id)
    if status:
        stmt = stmt.where(Event.status == status)
    if event_type:
        stmt = stmt.where(Event.event_type == event_type)
    if organizer_type:
        stmt = stmt.where(Event.organizer_type == organizer_type)
        if organizer_id is not None:
            column = {
                "USER": Event.organizer_user_id,
                "DIVISION": Event.organizer_division_id,
                "CLUB": Event.organizer_club_id,
            }.get(organizer_type)
            if column is not None:
                stmt = stmt.where(column == organizer_id)
    if is_public is not None:
        stmt = stmt.where(Event.is_public == is_public)
    if upcoming_only:
        stmt = stmt.where(Event.start_date >= (today or date.today()))
    if start_date:
        stmt = stmt.where(Event.start_date >= start_date)
    if end_date:
        stmt = stmt.where(Event.start_date <= end_date)

    with storage_errors(db, "listing events"):
        total = db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
        items = list(
            db.scalars(
                stmt.order_by(Event.start_date, Event.start_time, Event.id).offset((page - 1) * limit).limit(limit)
            )
        )

    return {
        "items": items,
        "total": int(total),
        "page": page,
        "limit": limit,
        "pages": math.ceil(total / limit) if limit else 0,
    }

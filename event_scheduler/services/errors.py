"""
Service error taxonomy.

Every failure a caller can recover from is an ``EventServiceError`` carrying a
human-readable message, a classification ``code`` and the HTTP status the
transport layer reports it with. Storage failures are wrapped into
``InternalError`` so the caller only ever sees a flat "internal_error".
"""
import logging
from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


class EventServiceError(Exception):
    code = "internal_error"
    status_code = 500

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, **self.context}


class InvalidEventData(EventServiceError):
    code = "invalid_event_data"
    status_code = 400

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message, field=field)
        self.field = field


class ScheduleConflict(EventServiceError):
    code = "schedule_conflict"
    status_code = 409

    def __init__(self, conflicting_event_id: int, conflicting_event_name: str):
        super().__init__(
            f"Event conflicts with existing event: {conflicting_event_name}",
            conflicting_event_id=conflicting_event_id,
        )
        self.conflicting_event_id = conflicting_event_id


class Forbidden(EventServiceError):
    code = "forbidden"
    status_code = 403


class EventNotFound(EventServiceError):
    code = "event_not_found"
    status_code = 404

    def __init__(self, event_id: int):
        super().__init__("Event not found", event_id=event_id)


class EventNotAvailable(EventServiceError):
    code = "event_not_available"
    status_code = 422


class AlreadyRegistered(EventServiceError):
    code = "already_registered"
    status_code = 409


class NotRegistered(EventServiceError):
    code = "not_registered"
    status_code = 404


class AlreadyCancelled(EventServiceError):
    code = "already_cancelled"
    status_code = 410


class EventFull(EventServiceError):
    code = "event_full"
    status_code = 409


class EventHasAttendees(EventServiceError):
    code = "event_has_attendees"
    status_code = 409


class RegistrationBusy(EventServiceError):
    code = "registration_busy"
    status_code = 503


class InternalError(EventServiceError):
    code = "internal_error"
    status_code = 500

    def to_dict(self) -> dict:
        # the original message stays on the exception for logs only
        return {"code": self.code, "message": "Internal error"}


class SessionGenerationFailed(InternalError):
    """The event row is persisted but its sessions are missing."""

    code = "session_generation_failed"

    def __init__(self, event_id: int, reason: str):
        super().__init__(f"Error generating sessions for event {event_id}: {reason}", event_id=event_id)
        self.event_id = event_id

    def to_dict(self) -> dict:
        return {"code": self.code, "message": "Event saved but sessions could not be generated", **self.context}


@contextmanager
def storage_errors(db: Session, action: str) -> Iterator[None]:
    """Roll back and wrap lower-layer storage failures into ``InternalError``."""
    try:
        yield
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Storage failure while %s", action)
        raise InternalError(f"Error {action}: {e}") from e

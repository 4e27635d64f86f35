"""
Capacity-bound registration.

An attendee record moves unregistered -> REGISTERED -> CANCELLED and never
back. Capacity is checked by counting REGISTERED rows before the insert; with
the default configuration nothing serializes concurrent requests, so the last
free seat can be taken more than once. Setting ``REGISTRATION_LOCK_ENABLED``
runs the check and insert under a per-event Redis lock.
"""
import logging
from contextlib import contextmanager
from typing import Iterator

import redis
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from event_scheduler.core import config
from event_scheduler.models.attendees import AttendeeStatus, EventAttendee
from event_scheduler.models.events import OPEN_STATUSES, Event
from event_scheduler.services.errors import (
    AlreadyCancelled,
    AlreadyRegistered,
    EventFull,
    EventNotAvailable,
    EventNotFound,
    NotRegistered,
    RegistrationBusy,
    storage_errors,
)

logger = logging.getLogger(__name__)


def get_redis_client():
    """Get Redis client for locking."""
    return redis.from_url(config.get_redis_url(), decode_responses=True)


@contextmanager
def registration_lock(event_id: int) -> Iterator[None]:
    """Serialize registrations for one event when locking is enabled."""
    if not config.registration_lock_enabled():
        yield
        return

    redis_client = get_redis_client()
    lock = redis_client.lock(
        f"event_registration_lock:{event_id}",
        timeout=config.REGISTRATION_LOCK_TIMEOUT,
        blocking_timeout=config.REGISTRATION_LOCK_BLOCKING_TIMEOUT,
    )
    try:
        acquired = lock.acquire(blocking=True)
    except redis.exceptions.RedisError as e:
        logger.warning("Registration lock for event %s unavailable: %s", event_id, e)
        raise RegistrationBusy("Could not acquire registration lock, please try again.", event_id=event_id) from e
    if not acquired:
        raise RegistrationBusy("Could not acquire registration lock, please try again.", event_id=event_id)

    try:
        yield
    finally:
        try:
            lock.release()
        except redis.exceptions.RedisError as e:
            # the lock may have expired while the registration was committed
            logger.warning("Could not release registration lock for event %s: %s", event_id, e)


def has_capacity(event: Event, registered_count: int) -> bool:
    """True if the event can take one more attendee. No limit means unbounded."""
    if event.max_participants is None:
        return True
    return registered_count < event.max_participants


def count_registered(db: Session, event_id: int) -> int:
    count = db.scalar(
        select(func.count(EventAttendee.id)).where(
            EventAttendee.event_id == event_id,
            EventAttendee.status == AttendeeStatus.REGISTERED.value,
        )
    )
    return int(count or 0)


def find_attendance(db: Session, *, event_id: int, user_id: int) -> EventAttendee | None:
    return db.scalar(
        select(EventAttendee)
        .where(EventAttendee.event_id == event_id, EventAttendee.user_id == user_id)
        .order_by(EventAttendee.id)
        .limit(1)
    )


def register_for_event(db: Session, *, event_id: int, user_id: int) -> EventAttendee:
    """Register a user for a published event."""
    with registration_lock(event_id), storage_errors(db, "registering for event"):
        event = db.get(Event, event_id)
        if event is None:
            raise EventNotFound(event_id)
        if event.status not in OPEN_STATUSES:
            raise EventNotAvailable("Event is not open for registration", event_id=event_id, status=event.status)

        # a cancelled record also blocks a second registration
        if find_attendance(db, event_id=event_id, user_id=user_id) is not None:
            raise AlreadyRegistered("User is already registered for this event", event_id=event_id)

        if not has_capacity(event, count_registered(db, event_id)):
            logger.warning("Event %s is full (max %s)", event_id, event.max_participants)
            raise EventFull("Event has reached maximum participants limit", event_id=event_id)

        attendee = EventAttendee(
            event_id=event_id,
            user_id=user_id,
            status=AttendeeStatus.REGISTERED.value,
        )
        db.add(attendee)
        db.commit()
        db.refresh(attendee)

    logger.info("User %s registered for event %s", user_id, event_id)
    return attendee


def cancel_registration(db: Session, *, event_id: int, user_id: int) -> EventAttendee:
    """Move a user's registration to CANCELLED. The record is kept."""
    with storage_errors(db, "cancelling registration"):
        if db.get(Event, event_id) is None:
            raise EventNotFound(event_id)

        attendee = find_attendance(db, event_id=event_id, user_id=user_id)
        if attendee is None:
            raise NotRegistered("User is not registered for this event", event_id=event_id)
        if attendee.status == AttendeeStatus.CANCELLED.value:
            raise AlreadyCancelled("User has already cancelled their registration", event_id=event_id)

        attendee.status = AttendeeStatus.CANCELLED.value
        db.commit()
        db.refresh(attendee)

    logger.info("User %s cancelled registration for event %s", user_id, event_id)
    return attendee


def get_event_stats(db: Session, event_id: int) -> dict:
    event = db.get(Event, event_id)
    if event is None:
        raise EventNotFound(event_id)

    rows = db.execute(
        select(EventAttendee.status, func.count(EventAttendee.id))
        .where(EventAttendee.event_id == event_id)
        .group_by(EventAttendee.status)
    ).all()
    counts = {status: int(count) for status, count in rows}
    registered = counts.get(AttendeeStatus.REGISTERED.value, 0)
    cancelled = counts.get(AttendeeStatus.CANCELLED.value, 0)

    available = None
    if event.max_participants is not None:
        available = max(event.max_participants - registered, 0)

    return {
        "event_id": event.id,
        "max_participants": event.max_participants,
        "total_attendees": registered + cancelled,
        "registered_attendees": registered,
        "cancelled_attendees": cancelled,
        "available_slots": available,
    }


def list_events_with_available_slots(db: Session) -> list[Event]:
    """Open events whose REGISTERED count is below their limit, or unbounded."""
    registered = (
        select(func.count(EventAttendee.id))
        .where(
            EventAttendee.event_id == Event.id,
            EventAttendee.status == AttendeeStatus.REGISTERED.value,
        )
        .correlate(Event)
        .scalar_subquery()
    )
    stmt = (
        select(Event)
        .where(Event.status.in_(OPEN_STATUSES))
        .where(or_(Event.max_participants.is_(None), Event.max_participants > registered))
        .order_by(Event.start_date, Event.start_time, Event.id)
    )
    with storage_errors(db, "listing events with available slots"):
        return list(db.scalars(stmt))

"""
Test capacity-bound registration.
"""
from unittest.mock import MagicMock

import pytest
import redis
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from event_scheduler.models.attendees import AttendeeStatus, EventAttendee
from event_scheduler.models.events import Event
from event_scheduler.services import registrations
from event_scheduler.services.errors import (
    AlreadyCancelled,
    AlreadyRegistered,
    EventFull,
    EventNotAvailable,
    EventNotFound,
    NotRegistered,
    RegistrationBusy,
)
from event_scheduler.services.registrations import (
    cancel_registration,
    count_registered,
    get_event_stats,
    has_capacity,
    list_events_with_available_slots,
    register_for_event,
)
from event_scheduler.tests.conftest import make_attendee, make_event


class TestCapacityGuard:
    def test_unbounded(self):
        assert has_capacity(Event(max_participants=None), 10_000) is True

    def test_boundary(self):
        event = Event(max_participants=2)

        assert has_capacity(event, 1) is True
        assert has_capacity(event, 2) is False

    def test_cancelled_do_not_count(self, db_session: Session):
        event = make_event(db_session, max_participants=1)
        make_attendee(db_session, event, user_id=1, status=AttendeeStatus.CANCELLED)
        make_attendee(db_session, event, user_id=2)

        assert count_registered(db_session, event.id) == 1


class TestRegister:
    """Test the registration transition."""

    def test_register_success(self, db_session: Session):
        event = make_event(db_session, max_participants=10)

        attendee = register_for_event(db_session, event_id=event.id, user_id=42)

        assert attendee.id is not None
        assert attendee.user_id == 42
        assert attendee.status == AttendeeStatus.REGISTERED.value

    def test_online_events_accept_registrations(self, db_session: Session):
        event = make_event(db_session, status="ONLINE")

        assert register_for_event(db_session, event_id=event.id, user_id=1).status == "REGISTERED"

    def test_event_not_found(self, db_session: Session):
        with pytest.raises(EventNotFound):
            register_for_event(db_session, event_id=999, user_id=1)

    @pytest.mark.parametrize("status", ["DRAFT", "ARCHIVED"])
    def test_event_not_available(self, db_session: Session, status):
        event = make_event(db_session, status=status)

        with pytest.raises(EventNotAvailable):
            register_for_event(db_session, event_id=event.id, user_id=1)

    def test_already_registered(self, db_session: Session):
        event = make_event(db_session)
        register_for_event(db_session, event_id=event.id, user_id=1)

        with pytest.raises(AlreadyRegistered):
            register_for_event(db_session, event_id=event.id, user_id=1)

    def test_event_full(self, db_session: Session):
        event = make_event(db_session, max_participants=1)
        register_for_event(db_session, event_id=event.id, user_id=1)

        with pytest.raises(EventFull):
            register_for_event(db_session, event_id=event.id, user_id=2)

    def test_seat_freed_by_cancellation(self, db_session: Session):
        """A cancels, so B, who never registered, takes the freed seat."""
        event = make_event(db_session, max_participants=1)
        register_for_event(db_session, event_id=event.id, user_id=1)
        with pytest.raises(EventFull):
            register_for_event(db_session, event_id=event.id, user_id=2)

        cancel_registration(db_session, event_id=event.id, user_id=1)
        attendee = register_for_event(db_session, event_id=event.id, user_id=2)

        assert attendee.status == AttendeeStatus.REGISTERED.value

    def test_no_reregistration_after_cancel(self, db_session: Session):
        event = make_event(db_session)
        register_for_event(db_session, event_id=event.id, user_id=1)
        cancel_registration(db_session, event_id=event.id, user_id=1)

        with pytest.raises(AlreadyRegistered):
            register_for_event(db_session, event_id=event.id, user_id=1)

        records = db_session.scalar(select(func.count(EventAttendee.id)).where(EventAttendee.event_id == event.id))
        assert records == 1

    def test_repeated_failures_report_same_error(self, db_session: Session):
        event = make_event(db_session)
        register_for_event(db_session, event_id=event.id, user_id=1)

        for _ in range(3):
            with pytest.raises(AlreadyRegistered):
                register_for_event(db_session, event_id=event.id, user_id=1)

    def test_capacity_check_is_best_effort(self, db_session: Session, monkeypatch):
        """A stale count, as seen by a concurrent request, lets the limit be exceeded."""
        event = make_event(db_session, max_participants=1)
        register_for_event(db_session, event_id=event.id, user_id=1)

        monkeypatch.setattr(registrations, "count_registered", lambda db, event_id: 0)
        register_for_event(db_session, event_id=event.id, user_id=2)
        monkeypatch.undo()

        assert count_registered(db_session, event.id) == 2


class TestCancel:
    """Test the cancellation transition."""

    def test_cancel_success(self, db_session: Session):
        event = make_event(db_session)
        register_for_event(db_session, event_id=event.id, user_id=1)

        attendee = cancel_registration(db_session, event_id=event.id, user_id=1)

        assert attendee.status == AttendeeStatus.CANCELLED.value

    def test_event_not_found(self, db_session: Session):
        with pytest.raises(EventNotFound):
            cancel_registration(db_session, event_id=999, user_id=1)

    def test_not_registered(self, db_session: Session):
        event = make_event(db_session)

        with pytest.raises(NotRegistered):
            cancel_registration(db_session, event_id=event.id, user_id=1)

    def test_already_cancelled(self, db_session: Session):
        event = make_event(db_session)
        register_for_event(db_session, event_id=event.id, user_id=1)
        cancel_registration(db_session, event_id=event.id, user_id=1)

        with pytest.raises(AlreadyCancelled):
            cancel_registration(db_session, event_id=event.id, user_id=1)


class TestStatistics:
    """Test attendance statistics and the available-slots listing."""

    def test_event_stats(self, db_session: Session):
        event = make_event(db_session, max_participants=5)
        for user_id in range(1, 4):
            make_attendee(db_session, event, user_id=user_id)
        make_attendee(db_session, event, user_id=9, status=AttendeeStatus.CANCELLED)

        stats = get_event_stats(db_session, event.id)

        assert stats == {
            "event_id": event.id,
            "max_participants": 5,
            "total_attendees": 4,
            "registered_attendees": 3,
            "cancelled_attendees": 1,
            "available_slots": 2,
        }

    def test_unbounded_event_has_no_slot_count(self, db_session: Session):
        event = make_event(db_session)

        assert get_event_stats(db_session, event.id)["available_slots"] is None

    def test_stats_not_found(self, db_session: Session):
        with pytest.raises(EventNotFound):
            get_event_stats(db_session, 999)

    def test_available_slots_compare_counts(self, db_session: Session):
        unbounded = make_event(db_session, name="unbounded")
        partly_taken = make_event(db_session, name="partly taken", max_participants=2)
        make_attendee(db_session, partly_taken, user_id=1)
        full = make_event(db_session, name="full", max_participants=1)
        make_attendee(db_session, full, user_id=1)
        freed = make_event(db_session, name="freed", max_participants=1)
        make_attendee(db_session, freed, user_id=1, status=AttendeeStatus.CANCELLED)
        make_event(db_session, name="draft", status="DRAFT")

        names = {e.name for e in list_events_with_available_slots(db_session)}

        assert names == {unbounded.name, partly_taken.name, freed.name}


class TestRegistrationLock:
    """Test the opt-in Redis lock around registration."""

    def test_register_under_lock(self, db_session: Session, redis_client):
        event = make_event(db_session, max_participants=1)

        register_for_event(db_session, event_id=event.id, user_id=1)

        with pytest.raises(EventFull):
            register_for_event(db_session, event_id=event.id, user_id=2)
        # the lock is released after each attempt
        assert redis_client.get(f"event_registration_lock:{event.id}") is None

    def test_busy_when_lock_held(self, db_session: Session, redis_client):
        event = make_event(db_session)
        held = redis_client.lock(f"event_registration_lock:{event.id}", timeout=10)
        assert held.acquire(blocking=False) is True

        try:
            with pytest.raises(RegistrationBusy):
                register_for_event(db_session, event_id=event.id, user_id=1)
        finally:
            held.release()

        assert count_registered(db_session, event.id) == 0

    def test_lock_disabled_by_default(self, db_session: Session, monkeypatch):
        def no_redis():
            raise AssertionError("Redis must not be used when locking is disabled")

        monkeypatch.setattr(registrations, "get_redis_client", no_redis)
        event = make_event(db_session)

        assert register_for_event(db_session, event_id=event.id, user_id=1).id is not None

    def test_busy_when_redis_unreachable(self, db_session: Session, redis_client, monkeypatch):
        unreachable = MagicMock()
        unreachable.lock.return_value.acquire.side_effect = redis.exceptions.ConnectionError("refused")
        monkeypatch.setattr(registrations, "get_redis_client", lambda: unreachable)
        event = make_event(db_session)

        with pytest.raises(RegistrationBusy):
            register_for_event(db_session, event_id=event.id, user_id=1)

        assert count_registered(db_session, event.id) == 0

    def test_expired_lock_keeps_registration(self, db_session: Session, redis_client, monkeypatch):
        expiring = MagicMock()
        expiring.lock.return_value.acquire.return_value = True
        expiring.lock.return_value.release.side_effect = redis.exceptions.LockNotOwnedError("expired")
        monkeypatch.setattr(registrations, "get_redis_client", lambda: expiring)
        event = make_event(db_session)

        attendee = register_for_event(db_session, event_id=event.id, user_id=1)

        assert attendee.status == AttendeeStatus.REGISTERED.value
        assert count_registered(db_session, event.id) == 1

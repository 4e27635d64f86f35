import enum
from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from event_scheduler.database.db import Base

if TYPE_CHECKING:
    from event_scheduler.models.attendees import EventAttendee


class EventStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    ARCHIVED = "ARCHIVED"
    ONLINE = "ONLINE"


class EventType(str, enum.Enum):
    SINGLE = "SINGLE"
    COURSE = "COURSE"
    WORKSHOP = "WORKSHOP"
    RECURRING = "RECURRING"


class RecurrencePattern(str, enum.Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    CUSTOM = "CUSTOM"


class OrganizerType(str, enum.Enum):
    USER = "USER"
    DIVISION = "DIVISION"
    CLUB = "CLUB"
    EXTERNAL = "EXTERNAL"


# Statuses in which an event accepts registrations
OPEN_STATUSES = (EventStatus.PUBLISHED.value, EventStatus.ONLINE.value)


class Event(Base):
    __tablename__ = "events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    event_type: Mapped[str] = mapped_column(String(16), nullable=False, default=EventType.SINGLE.value)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=EventStatus.DRAFT.value)
    location: Mapped[str | None] = mapped_column(String(500), nullable=True)
    cover_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    start_date: Mapped[date | None] = mapped_column(Date, nullable=True, index=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    # zero-padded HH:MM, compared as strings
    start_time: Mapped[str | None] = mapped_column(String(5), nullable=True)
    end_time: Mapped[str | None] = mapped_column(String(5), nullable=True)
    session_duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)

    is_recurring: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    recurrence_pattern: Mapped[str | None] = mapped_column(String(16), nullable=True)
    recurrence_interval: Mapped[int | None] = mapped_column(Integer, nullable=True)
    recurrence_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    recurrence_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    recurrence_days: Mapped[str | None] = mapped_column(String(32), nullable=True)

    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    max_participants: Mapped[int | None] = mapped_column(Integer, nullable=True)

    organizer_type: Mapped[str] = mapped_column(String(16), nullable=False)
    organizer_user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    organizer_division_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    organizer_club_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    external_organizer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    sessions: Mapped[list["EventSession"]] = relationship(
        back_populates="event", order_by="EventSession.session_date"
    )
    attendees: Mapped[list["EventAttendee"]] = relationship(back_populates="event")


class EventSession(Base):
    __tablename__ = "event_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    event_id: Mapped[int] = mapped_column(ForeignKey("events.id"), nullable=False, index=True)
    session_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    is_cancelled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    cancellation_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    event: Mapped["Event"] = relationship(back_populates="sessions")

from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from event_scheduler.models.events import Event


def intervals_overlap(a_start: str, a_end: str, b_start: str, b_end: str) -> bool:
    """Half-open overlap test for zero-padded ``HH:MM`` windows.

    Touching endpoints (one ends when the other starts) do not overlap.
    """
    return a_start < b_end and a_end > b_start


def find_conflicts(
    db: Session,
    *,
    candidate_date: date,
    candidate_start: str,
    candidate_end: str,
    exclude_event_id: int | None = None,
) -> list[Event]:
    """Return events on ``candidate_date`` whose window overlaps the candidate's."""
    stmt = (
        select(Event)
        .where(Event.start_date == candidate_date)
        .where(Event.start_time < candidate_end)
        .where(Event.end_time > candidate_start)
        .order_by(Event.start_time, Event.id)
    )
    if exclude_event_id is not None:
        stmt = stmt.where(Event.id != exclude_event_id)
    return list(db.scalars(stmt))

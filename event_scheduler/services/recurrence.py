"""
Expansion of event schedules into concrete calendar occurrences.

Everything here is a pure function of its arguments: the same inputs always
produce the same occurrences, so sessions can be discarded and rebuilt at any
time. Weekday indices follow ISO numbering (1 = Monday ... 7 = Sunday).
"""
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable

from dateutil.relativedelta import relativedelta
from dateutil.rrule import DAILY, MO, WEEKLY, rrule

from event_scheduler.models.events import EventType, RecurrencePattern


@dataclass(frozen=True)
class Occurrence:
    session_date: date
    start_time: str
    end_time: str


def parse_recurrence_days(value: str | None) -> frozenset[int]:
    """Parse a delimited weekday string such as ``"1,3,5"``.

    Raises ``ValueError`` for entries that are not integers between 1 and 7.
    """
    if not value:
        return frozenset()
    days = set()
    for part in value.split(","):
        part = part.strip()
        if not part:
            continue
        day = int(part)
        if not 1 <= day <= 7:
            raise ValueError(f"weekday index out of range: {day}")
        days.add(day)
    return frozenset(days)


def format_recurrence_days(days: Iterable[int]) -> str:
    return ",".join(str(d) for d in sorted(days))


def _at_midnight(d: date) -> datetime:
    return datetime.combine(d, time.min)


def _daily(interval: int, range_start: date, range_end: date) -> list[date]:
    rule = rrule(DAILY, interval=interval, dtstart=_at_midnight(range_start), until=_at_midnight(range_end))
    return [dt.date() for dt in rule]


def _weekly(interval: int, range_start: date, range_end: date, days: frozenset[int]) -> list[date]:
    if not days:
        days = frozenset({range_start.isoweekday()})

    # Week counting starts from the week of the first matching date
    first = range_start
    while first.isoweekday() not in days:
        first += timedelta(days=1)
        if first > range_end:
            return []

    rule = rrule(
        WEEKLY,
        interval=interval,
        dtstart=_at_midnight(first),
        until=_at_midnight(range_end),
        byweekday=sorted(d - 1 for d in days),
        wkst=MO,
    )
    return [dt.date() for dt in rule]


def _monthly(interval: int, range_start: date, range_end: date) -> list[date]:
    dates = []
    step = 0
    while True:
        # relativedelta clamps day 31 to the last day of shorter months
        current = range_start + relativedelta(months=step * interval)
        if current > range_end:
            return dates
        dates.append(current)
        step += 1


def expand(
    pattern: RecurrencePattern | str,
    interval: int,
    range_start: date,
    range_end: date,
    days: Iterable[int] | None,
    session_start: str,
    session_end: str,
) -> list[Occurrence]:
    """Expand a recurrence description into occurrences within ``[range_start, range_end]``."""
    if interval < 1:
        raise ValueError("recurrence interval must be at least 1")
    if range_end < range_start:
        return []

    pattern = RecurrencePattern(pattern)
    if pattern == RecurrencePattern.DAILY:
        dates = _daily(interval, range_start, range_end)
    elif pattern in (RecurrencePattern.WEEKLY, RecurrencePattern.CUSTOM):
        dates = _weekly(interval, range_start, range_end, frozenset(days or ()))
    else:
        dates = _monthly(interval, range_start, range_end)

    return [Occurrence(d, session_start, session_end) for d in dates]


def expand_days(start_date: date, end_date: date, session_start: str, session_end: str) -> list[Occurrence]:
    """One occurrence per calendar day of a multi-day, non-recurring event."""
    occurrences = []
    current = start_date
    while current <= end_date:
        occurrences.append(Occurrence(current, session_start, session_end))
        current += timedelta(days=1)
    return occurrences


def session_window(
    start_time: str | None, end_time: str | None, duration_minutes: int | None
) -> tuple[str, str] | None:
    """Resolve the daily time window of an event's sessions.

    Falls back to ``start_time + duration`` when no end time is set. The
    computed end never wraps past midnight, and a start of 23:59 leaves no
    window at all.
    """
    if not start_time:
        return None
    if end_time:
        return start_time, end_time
    if not duration_minutes:
        return None
    hours, minutes = (int(part) for part in start_time.split(":"))
    start = hours * 60 + minutes
    total = min(start + duration_minutes, 23 * 60 + 59)
    if total <= start:
        return None
    return start_time, f"{total // 60:02d}:{total % 60:02d}"


def occurrences_for_event(event) -> list[Occurrence]:
    """Choose the expansion matching the event's shape.

    Recurring events expand over their recurrence range, multi-day events get
    one occurrence per day, and any other dated event gets exactly one.
    """
    window = session_window(event.start_time, event.end_time, event.session_duration_minutes)
    if window is None:
        return []
    session_start, session_end = window

    if event.is_recurring:
        return expand(
            event.recurrence_pattern,
            event.recurrence_interval or 1,
            event.recurrence_start_date,
            event.recurrence_end_date,
            parse_recurrence_days(event.recurrence_days),
            session_start,
            session_end,
        )

    if event.start_date is None:
        return []
    if event.event_type != EventType.SINGLE.value and event.end_date and event.end_date != event.start_date:
        return expand_days(event.start_date, event.end_date, session_start, session_end)
    return [Occurrence(event.start_date, session_start, session_end)]

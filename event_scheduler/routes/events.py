import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from event_scheduler.core.permissions import PermissionChecker, get_permission_checker
from event_scheduler.database.db import get_db
from event_scheduler.models.events import EventStatus, EventType, OrganizerType
from event_scheduler.routes.dependencies import get_current_user_id, to_http_exception
from event_scheduler.schemas.events import (
    EventCreate,
    EventDetailOut,
    EventOut,
    EventPage,
    EventSessionOut,
    EventStatsOut,
    EventUpdate,
)
from event_scheduler.services import events as event_service
from event_scheduler.services.errors import EventServiceError, SessionGenerationFailed
from event_scheduler.services.registrations import get_event_stats, list_events_with_available_slots
from event_scheduler.tasks import regenerate_sessions_task

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["events"])


def _enqueue_session_retry(event_id: int) -> None:
    try:
        regenerate_sessions_task.delay(event_id)
    except Exception:
        logger.exception("Could not enqueue session regeneration for event %s", event_id)


@router.post("", response_model=EventOut, status_code=201)
def create_event(
    payload: EventCreate,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
    permissions: PermissionChecker = Depends(get_permission_checker),
):
    try:
        return event_service.create_event(db, payload.model_dump(), user_id=user_id, permissions=permissions)
    except SessionGenerationFailed as e:
        _enqueue_session_retry(e.event_id)
        raise to_http_exception(e)
    except EventServiceError as e:
        raise to_http_exception(e)


@router.get("", response_model=EventPage)
def list_events(
    user_id: int | None = None,
    status: EventStatus | None = None,
    event_type: EventType | None = None,
    organizer_type: OrganizerType | None = None,
    organizer_id: int | None = None,
    is_public: bool | None = None,
    upcoming_only: bool = False,
    start_date: date | None = None,
    end_date: date | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    if start_date and end_date and start_date > end_date:
        raise HTTPException(status_code=422, detail="Start date must be before or equal to end date")
    if organizer_id is not None and organizer_type is None:
        raise HTTPException(status_code=422, detail="Organizer type is required when organizer ID is specified")
    try:
        return event_service.list_events(
            db,
            user_id=user_id,
            status=status.value if status else None,
            event_type=event_type.value if event_type else None,
            organizer_type=organizer_type.value if organizer_type else None,
            organizer_id=organizer_id,
            is_public=is_public,
            upcoming_only=upcoming_only,
            start_date=start_date,
            end_date=end_date,
            page=page,
            limit=limit,
        )
    except EventServiceError as e:
        raise to_http_exception(e)


@router.get("/available", response_model=list[EventOut])
def available_events(db: Session = Depends(get_db)):
    try:
        return list_events_with_available_slots(db)
    except EventServiceError as e:
        raise to_http_exception(e)


@router.get("/{event_id}", response_model=EventDetailOut, response_model_exclude_none=True)
def get_event(
    event_id: int,
    include_sessions: bool = False,
    include_attendees: bool = False,
    include_statistics: bool = False,
    db: Session = Depends(get_db),
):
    try:
        return event_service.get_event(
            db,
            event_id,
            include_sessions=include_sessions,
            include_attendees=include_attendees,
            include_statistics=include_statistics,
        )
    except EventServiceError as e:
        raise to_http_exception(e)


@router.patch("/{event_id}", response_model=EventOut)
def update_event(
    event_id: int,
    payload: EventUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
    permissions: PermissionChecker = Depends(get_permission_checker),
):
    try:
        return event_service.update_event(
            db, event_id, payload.model_dump(exclude_unset=True), user_id=user_id, permissions=permissions
        )
    except EventServiceError as e:
        raise to_http_exception(e)


@router.delete("/{event_id}", status_code=204)
def delete_event(
    event_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
    permissions: PermissionChecker = Depends(get_permission_checker),
):
    try:
        event_service.delete_event(db, event_id, user_id=user_id, permissions=permissions)
    except EventServiceError as e:
        raise to_http_exception(e)
    return Response(status_code=204)


@router.get("/{event_id}/sessions", response_model=list[EventSessionOut])
def event_sessions(event_id: int, db: Session = Depends(get_db)):
    try:
        return event_service.list_sessions(db, event_id)
    except EventServiceError as e:
        raise to_http_exception(e)


@router.post("/{event_id}/sessions/regenerate", response_model=list[EventSessionOut])
def regenerate_event_sessions(event_id: int, db: Session = Depends(get_db)):
    try:
        return event_service.regenerate_sessions(db, event_id)
    except EventServiceError as e:
        raise to_http_exception(e)


@router.get("/{event_id}/stats", response_model=EventStatsOut)
def event_stats(event_id: int, db: Session = Depends(get_db)):
    try:
        return get_event_stats(db, event_id)
    except EventServiceError as e:
        raise to_http_exception(e)

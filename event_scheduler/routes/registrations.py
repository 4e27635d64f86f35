from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from event_scheduler.database.db import get_db
from event_scheduler.routes.dependencies import get_current_user_id, to_http_exception
from event_scheduler.schemas.attendees import AttendeeOut
from event_scheduler.services.errors import EventServiceError
from event_scheduler.services.registrations import cancel_registration, register_for_event

router = APIRouter(prefix="/events", tags=["registrations"])


@router.post("/{event_id}/register", response_model=AttendeeOut, status_code=201)
def register(event_id: int, db: Session = Depends(get_db), user_id: int = Depends(get_current_user_id)):
    try:
        return register_for_event(db, event_id=event_id, user_id=user_id)
    except EventServiceError as e:
        raise to_http_exception(e)


@router.post("/{event_id}/cancel", response_model=AttendeeOut)
def cancel(event_id: int, db: Session = Depends(get_db), user_id: int = Depends(get_current_user_id)):
    try:
        return cancel_registration(db, event_id=event_id, user_id=user_id)
    except EventServiceError as e:
        raise to_http_exception(e)

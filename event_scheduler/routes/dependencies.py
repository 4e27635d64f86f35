from fastapi import Header, HTTPException

from event_scheduler.services.errors import EventServiceError


def get_current_user_id(x_user_id: int = Header(..., ge=1)) -> int:
    """Acting user, resolved upstream by the authentication gateway."""
    return x_user_id


def to_http_exception(error: EventServiceError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error.to_dict())

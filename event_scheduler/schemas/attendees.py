from datetime import datetime

from pydantic import BaseModel


class AttendeeOut(BaseModel):
    id: int
    event_id: int
    user_id: int
    status: str
    created_at: datetime | None
    updated_at: datetime | None

    class Config:
        from_attributes = True

import logging

from event_scheduler.core.celery_config import celery_app
from event_scheduler.database.db import SessionLocal
from event_scheduler.services.errors import InternalError
from event_scheduler.services.events import regenerate_sessions

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, autoretry_for=(InternalError,), retry_backoff=True, max_retries=3)
def regenerate_sessions_task(self, event_id: int) -> int:
    """Rebuild the sessions of an event whose session generation failed."""
    db = SessionLocal()
    try:
        sessions = regenerate_sessions(db, event_id)
    finally:
        db.close()
    logger.info("Task %s regenerated %d sessions for event %s", self.request.id, len(sessions), event_id)
    return len(sessions)

from celery import Celery

from event_scheduler.core.config import get_redis_url


def make_celery(app_name: str = "event_scheduler") -> Celery:
    redis_url = get_redis_url()
    celery = Celery(app_name, broker=redis_url, backend=redis_url, include=["event_scheduler.tasks"])
    celery.conf.task_serializer = "json"
    celery.conf.result_serializer = "json"
    celery.conf.accept_content = ["json"]
    celery.conf.result_persistent = False
    celery.conf.task_track_started = True
    # session regeneration is idempotent
    celery.conf.task_acks_late = True
    celery.conf.task_reject_on_worker_lost = True
    return celery


celery_app = make_celery()

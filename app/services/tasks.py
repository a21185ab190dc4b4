import asyncio
import logging
from typing import Iterable

from celery import Celery
from kombu.exceptions import OperationalError

from app.core.config import settings

logger = logging.getLogger(__name__)

celery_app = Celery(
    "worker",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_BACKEND,
)
celery_app.conf.task_routes = {
    "app.services.tasks.dispatch_side_effect": {"queue": "documents"},
    "app.services.tasks.drain_outbox": {"queue": "documents"},
}
celery_app.conf.beat_schedule = {
    "drain-outbox": {
        "task": "app.services.tasks.drain_outbox",
        "schedule": float(settings.OUTBOX_SWEEP_INTERVAL),
    },
}


@celery_app.task(bind=True, max_retries=3)
def dispatch_side_effect(self, effect_id: int):
    from app.services.tasks_internal import dispatch_side_effect_async

    try:
        result = asyncio.run(dispatch_side_effect_async(effect_id))
    except Exception as e:
        retry_kwargs = {"countdown": 2 ** self.request.retries}
        raise self.retry(exc=e, **retry_kwargs)
    return str(result.outcome) if result else None


@celery_app.task
def drain_outbox():
    """Re-dispatch outbox rows that are due, including ones lost by a crashed worker."""
    from app.services.tasks_internal import due_side_effects_async

    effect_ids = asyncio.run(due_side_effects_async())
    for effect_id in effect_ids:
        dispatch_side_effect.delay(effect_id)
    if effect_ids:
        logger.info(f"Re-dispatched {len(effect_ids)} outbox side effects")
    return len(effect_ids)


def enqueue_side_effects(effect_ids: Iterable[int]) -> None:
    """Hand committed outbox rows to the worker. Broker errors leave them for drain_outbox."""
    for effect_id in effect_ids:
        try:
            dispatch_side_effect.delay(effect_id)
        except OperationalError as e:
            logger.error(f"Could not enqueue side effect {effect_id}, leaving it for the sweep: {e}")

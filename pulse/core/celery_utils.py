"""
Queueing helpers for handing work from request handlers to Celery.

Publishing runs on a small thread pool with its own broker connection, so an
unreachable Redis costs a request at most ``QUEUE_TIMEOUT_SECONDS`` and never
an exception.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import NamedTuple, Optional
from celery import Task
from kombu import Connection

from pulse.core.celery_app import celery_app  # noqa: F401 - sets the current app for shared tasks
from pulse.core.config import settings

logger = logging.getLogger(__name__)

QUEUE_TIMEOUT_SECONDS = 5

PUBLISH_RETRY_POLICY = {
    'max_retries': 3,
    'interval_start': 0,
    'interval_step': 0.2,
    'interval_max': 0.2,
}

_publisher = ThreadPoolExecutor(max_workers=4, thread_name_prefix="pulse_publish")


class QueueOutcome(NamedTuple):
    queued: bool
    task_id: Optional[str] = None
    error: Optional[str] = None


def publish(task: Task, args: tuple, kwargs: dict, broker_url: Optional[str] = None) -> QueueOutcome:
    """Publish one task over a fresh connection. Broker failures become an outcome, not an exception."""
    try:
        with Connection(broker_url or settings.REDIS_URL) as conn:
            result = task.apply_async(
                args=args,
                kwargs=kwargs,
                connection=conn,
                retry=True,
                retry_policy=PUBLISH_RETRY_POLICY,
            )
    except Exception as e:
        return QueueOutcome(queued=False, error=f"{type(e).__name__}: {e}")
    return QueueOutcome(queued=True, task_id=result.id)


def queue_task_safely(task: Task, *args, **kwargs) -> bool:
    """
    Queue a Celery task without letting broker problems reach the caller.

    Returns:
        bool: True if the broker accepted the task
    """
    future = _publisher.submit(publish, task, args, kwargs)
    try:
        outcome = future.result(timeout=QUEUE_TIMEOUT_SECONDS)
    except FutureTimeoutError:
        logger.error(f"Timed out queueing {task.name} after {QUEUE_TIMEOUT_SECONDS}s")
        return False

    if not outcome.queued:
        logger.error(f"Failed to queue {task.name}: {outcome.error}")
        return False

    logger.info(f"Queued {task.name} as {outcome.task_id}")
    return True

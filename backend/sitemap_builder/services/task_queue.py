"""
Delayed task queue used to sequence sitemap rebuilds
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import redis
from celery import Celery

from sitemap_builder.core.config import settings

logger = logging.getLogger(__name__)


class TaskQueue(ABC):
    """Named, delayed, single-shot tasks with a pending-task query"""

    @abstractmethod
    def schedule(self, task_name: str, payload: Optional[Dict[str, Any]], delay: float) -> str:
        """Run ``task_name`` with ``payload`` no earlier than ``delay`` seconds from now."""

    @abstractmethod
    def has_pending(self, task_name: str) -> bool:
        """Whether a task with this name is scheduled and has not started yet."""

    @abstractmethod
    def clear_pending(self, task_name: str) -> None:
        """Forget the pending marker; called by a task once it starts."""


class CeleryTaskQueue(TaskQueue):
    """
    TaskQueue on top of Celery.

    Celery has no cheap "is this task scheduled" query, so scheduling also
    sets a Redis marker per task name. The marker expires on its own shortly
    after the task was due, in case the task never clears it.
    """

    PENDING_KEY_PREFIX = "sitemap:pending:"
    PENDING_GRACE_SECONDS = 15 * 60

    def __init__(self, app: Celery, redis_client: redis.Redis):
        self.app = app
        self.redis = redis_client

    def _key(self, task_name: str) -> str:
        return f"{self.PENDING_KEY_PREFIX}{task_name}"

    def schedule(self, task_name: str, payload: Optional[Dict[str, Any]], delay: float) -> str:
        result = self.app.send_task(
            task_name,
            kwargs={"payload": payload},
            countdown=delay,
        )
        self.redis.set(self._key(task_name), result.id, ex=int(delay) + self.PENDING_GRACE_SECONDS)
        logger.debug(f"Scheduled {task_name} in {delay}s (task {result.id})")
        return result.id

    def has_pending(self, task_name: str) -> bool:
        return bool(self.redis.exists(self._key(task_name)))

    def clear_pending(self, task_name: str) -> None:
        self.redis.delete(self._key(task_name))


_task_queue: Optional[CeleryTaskQueue] = None


def get_task_queue() -> TaskQueue:
    """Process-wide Celery-backed queue, created on first use"""
    global _task_queue
    if _task_queue is None:
        from sitemap_builder.tasks.celery_app import celery_app

        _task_queue = CeleryTaskQueue(celery_app, redis.Redis.from_url(settings.REDIS_URL))
    return _task_queue

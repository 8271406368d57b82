"""Celery application configuration."""

from celery import Celery

from shopify_connect.core.config import settings

celery_app = Celery(
    "shopify_connect",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "shopify_connect.workers.tasks.shopify",
    ],
)

celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Task safety limits
    task_time_limit=120,
    task_soft_time_limit=90,
    # Result backend settings
    result_expires=3600,  # Results expire after 1 hour
    # Worker settings
    worker_prefetch_multiplier=1,
    task_default_queue="default",
    task_routes={
        "tasks.shopify.*": {"queue": "webhooks"},
    },
)


class BaseTask(celery_app.Task):  # type: ignore[misc, name-defined]
    """Base task class. Remote failures are terminal, so nothing is retried."""

    abstract = True
    max_retries = 0

"""Celery application configuration."""

from typing import Any

from celery import Celery, signals
from celery.schedules import crontab

from healios.core.config import settings
from healios.core.logging_config import setup_logging

# Create Celery app
celery_app = Celery(
    "healios",
    broker=str(settings.redis_url),
    backend=str(settings.redis_url),
    include=[
        "healios.workers.tasks.carts",
    ],
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Task safety limits
    task_time_limit=900,
    task_soft_time_limit=840,
    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # Result backend settings
    result_expires=3600,  # Results expire after 1 hour
    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=2,
    # Default queue name (must match worker -Q flag)
    task_default_queue="default",
    task_routes={
        "tasks.carts.*": {"queue": "carts"},
    },
    # Beat schedule (for periodic tasks)
    beat_schedule={
        "sweep-abandoned-carts": {
            "task": "tasks.carts.sweep_abandoned_carts",
            "schedule": settings.sweep_interval_seconds,
        },
        "purge-expired-carts": {
            "task": "tasks.carts.purge_expired_carts",
            "schedule": crontab(hour=3, minute=0),
        },
    },
)


@signals.setup_logging.connect
def configure_worker_logging(**_kwargs: Any) -> None:
    """Use the JSON log format in workers instead of Celery's default."""
    setup_logging(debug=settings.debug, service="worker")


# Task base class with common error handling
class BaseTask(celery_app.Task):  # type: ignore[misc, name-defined]
    """Base task class with error handling."""

    abstract = True
    autoretry_for = (Exception,)
    retry_backoff = True
    retry_backoff_max = 600  # Max 10 minutes between retries
    retry_jitter = True
    max_retries = 3

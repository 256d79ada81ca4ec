"""
Celery Application Configuration

Configures Celery with:
- The `image.upload` inbound channel routed to its own queue
- JSON serialization for requests and results
- Result backend so callers receive the pipeline outcome
"""

from celery import Celery
from kombu import Queue

from src.core.config import settings

# Create Celery app
celery_app = Celery(
    "image_processor",
    broker=settings.CELERY_BROKER_URL or settings.REDIS_URL,
    backend=settings.CELERY_RESULT_BACKEND or settings.REDIS_URL,
    include=[
        "src.pipeline.tasks",
    ]
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Task tracking
    task_track_started=True,
    task_time_limit=900,  # 15 minute hard limit
    task_soft_time_limit=840,  # 14 minute soft limit

    # Result expiration
    result_expires=86400,  # 24 hours

    # Worker settings
    worker_prefetch_multiplier=1,

    # Queue definitions
    task_queues=(
        Queue("default", routing_key="default"),
        Queue("image_queue", routing_key="image.#"),
    ),

    # Task routing
    task_routes={
        "image.upload": {"queue": "image_queue"},
    },

    # Late acknowledgment for reliability
    task_acks_late=True,
    task_reject_on_worker_lost=True,
)

"""Celery worker for outbox delivery and order maintenance jobs.

Run with ``celery -A celery_app worker -B``.
"""

from celery import Celery

from orderflow.config import settings

OUTBOX_TASK = "orderflow.modules.events.tasks.process_outbox"
BACKFILL_TASK = "orderflow.modules.piece.tasks.backfill_quantity_ready"

celery = Celery(
    "orderflow",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_routes={
        OUTBOX_TASK: {"queue": "event-outbox"},
        BACKFILL_TASK: {"queue": "maintenance"},
    },
    # Acknowledge after the task body ran so a crashed worker redelivers
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    result_expires=6 * 3600,
    broker_transport_options={"visibility_timeout": 3600, "retry_on_timeout": True},
    beat_schedule={
        "drain-order-event-outbox": {
            "task": OUTBOX_TASK,
            "schedule": settings.event_outbox_poll_seconds,
        },
    },
)

celery.autodiscover_tasks(["orderflow.modules.events", "orderflow.modules.piece"])

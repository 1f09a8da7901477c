"""Celery application carrying both delivery channels.

The primary and backup channels are two queues on the same broker. Run one
worker per queue so each channel has an independent consumer:

    celery -A medreminder.reminders.celery_app worker -Q reminders.primary
    celery -A medreminder.reminders.celery_app worker -Q reminders.backup
"""
from celery import Celery
from kombu import Exchange, Queue
from .config import settings


celery_app = Celery(
    "reminders",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND or None,
)

exchange = Exchange("reminders", type="direct", durable=True)

celery_app.conf.update(
    task_acks_late=True,
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    task_ignore_result=True,
    worker_prefetch_multiplier=1,
    # ETA tasks sit unacked until due; keep them from being redelivered early
    broker_transport_options={"visibility_timeout": (settings.HORIZON_DAYS + 2) * 86400},
    task_default_queue=settings.PRIMARY_QUEUE,
    task_default_exchange="reminders",
    include=["medreminder.reminders.tasks"],
    task_queues=(
        Queue(settings.PRIMARY_QUEUE, exchange=exchange, routing_key=settings.PRIMARY_QUEUE, durable=True),
        Queue(settings.BACKUP_QUEUE, exchange=exchange, routing_key=settings.BACKUP_QUEUE, durable=True),
    ),
    task_routes={
        "reminders.fire_primary": {"queue": settings.PRIMARY_QUEUE, "routing_key": settings.PRIMARY_QUEUE},
        "reminders.fire_backup": {"queue": settings.BACKUP_QUEUE, "routing_key": settings.BACKUP_QUEUE},
    },
)

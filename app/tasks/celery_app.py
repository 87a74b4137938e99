"""
Celery Application Configuration

Celery setup for running the position scanner and the settlement
recovery sweep out of process (requires LEDGER_BACKEND=mongo so workers
share the ledger with the API).

Usage:
    # Start Celery worker
    celery -A app.tasks.celery_app worker --loglevel=info

    # Start Celery beat (scheduler)
    celery -A app.tasks.celery_app beat --loglevel=info

    # Start both
    celery -A app.tasks.celery_app worker --beat --loglevel=info
"""

from datetime import timedelta

from celery import Celery
from app.config.settings import get_settings

settings = get_settings()

# Initialize Celery
celery_app = Celery(
    "margin_engine",
    broker=settings.celery_broker,
    backend=settings.celery_backend,
    include=[
        "app.tasks.position_tasks",
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

    # Task execution
    task_acks_late=True,  # Acknowledge after task completes
    task_reject_on_worker_lost=True,
    task_time_limit=120,
    task_soft_time_limit=100,

    # Result backend
    result_expires=3600,  # Results expire after 1 hour

    # Worker settings
    worker_prefetch_multiplier=1,

    task_routes={
        "app.tasks.position_tasks.*": {"queue": "positions"},
    },

    # Beat schedule (periodic tasks)
    beat_schedule={
        # Evaluate open positions for liquidation / TP / SL
        "scan-open-positions": {
            "task": "app.tasks.position_tasks.scan_open_positions_task",
            "schedule": timedelta(seconds=settings.SCANNER_INTERVAL_SECONDS),
            "options": {"queue": "positions", "expires": settings.SCANNER_INTERVAL_SECONDS},
        },

        # Finish settlements left in `closing`
        "recover-stuck-closes": {
            "task": "app.tasks.position_tasks.recover_stuck_closes_task",
            "schedule": timedelta(seconds=settings.RECOVERY_INTERVAL_SECONDS),
            "options": {"queue": "positions"},
        },
    }
)


if __name__ == "__main__":
    celery_app.start()

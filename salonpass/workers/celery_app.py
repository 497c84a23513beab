"""
Celery application configuration and initialization.

Runs the periodic expiry sweep, the daily expiring-soon warnings and
notification delivery.
"""

from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging as celery_setup_logging
from salonpass.core.config import settings

# Initialize Celery app
celery_app = Celery(
    "salonpass",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["salonpass.workers.tasks.subscription_tasks"],
)

# Celery configuration
celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_track_started=True,
    task_time_limit=300,  # 5 minutes max
    task_soft_time_limit=240,  # 4 minutes soft limit
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,
    task_routes={
        'subscriptions.send_notification': {'queue': 'notifications'},
    },
)

# Celery Beat schedule for periodic tasks
celery_app.conf.beat_schedule = {
    # Expire lapsed subscriptions and cancel suspensions past grace
    'sweep-expired-subscriptions': {
        'task': 'subscriptions.run_expiry_sweep',
        'schedule': crontab(minute=f'*/{settings.EXPIRY_SWEEP_INTERVAL_MINUTES}'),
        'options': {
            'expires': settings.EXPIRY_SWEEP_INTERVAL_MINUTES * 60 - 10,
        }
    },

    # Warn customers whose subscriptions end soon
    'notify-expiring-subscriptions-daily': {
        'task': 'subscriptions.notify_expiring',
        'schedule': crontab(hour=9, minute=0),
        'options': {
            'expires': 3600,
        }
    },
}


@celery_setup_logging.connect
def configure_worker_logging(**kwargs):
    """Route worker logs through loguru instead of Celery's own handlers"""
    from salonpass.core.logging import setup_logging

    setup_logging(log_to_files=True)

from celery import Celery
from celery.schedules import crontab
from adwatch.config import get_settings

settings = get_settings()

celery_app = Celery(
    "adwatch",
    broker=settings.effective_celery_broker_url,
    backend=settings.effective_celery_result_backend,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    result_expires=86400,  # 24 hours
    task_routes={
        "adwatch.tasks.sync_tasks.*": {"queue": "sync"},
        "adwatch.tasks.budget_tasks.*": {"queue": "monitoring"},
    },
)

# Celery Beat schedule for periodic tasks
celery_app.conf.beat_schedule = {
    "process-scheduled-syncs": {
        "task": "adwatch.tasks.sync_tasks.process_scheduled_syncs",
        "schedule": crontab(minute="*/15"),
    },
    "orchestrate-google-ads-sync": {
        "task": "adwatch.tasks.sync_tasks.orchestrate_google_sync",
        "schedule": crontab(minute=0, hour="*/6"),
    },
    "monitor-campaign-budgets": {
        "task": "adwatch.tasks.budget_tasks.monitor_campaign_budgets",
        "schedule": crontab(minute="*/30"),
    },
}

# Auto-discover tasks
celery_app.autodiscover_tasks(["adwatch.tasks"])

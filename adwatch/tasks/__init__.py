# Re-export Celery tasks so autodiscover finds them
from adwatch.tasks.sync_tasks import process_scheduled_syncs, orchestrate_google_sync
from adwatch.tasks.budget_tasks import monitor_campaign_budgets, check_campaign_budget_batch

__all__ = [
    "process_scheduled_syncs",
    "orchestrate_google_sync",
    "monitor_campaign_budgets",
    "check_campaign_budget_batch",
]

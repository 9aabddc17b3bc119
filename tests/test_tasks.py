"""
Tests for the Celery task wrappers (adwatch.tasks.*).

Tasks are called directly, which runs them synchronously in-process; the
database session factory and downstream services are mocked.
"""

from __future__ import annotations

import uuid
from unittest.mock import AsyncMock, MagicMock, patch

from adwatch.celery_app import celery_app
from adwatch.tasks.budget_tasks import check_campaign_budget_batch, monitor_campaign_budgets
from adwatch.tasks.sync_tasks import orchestrate_google_sync, process_scheduled_syncs


def test_beat_schedule_covers_periodic_jobs():
    tasks = {entry["task"] for entry in celery_app.conf.beat_schedule.values()}
    assert tasks == {
        "adwatch.tasks.sync_tasks.process_scheduled_syncs",
        "adwatch.tasks.sync_tasks.orchestrate_google_sync",
        "adwatch.tasks.budget_tasks.monitor_campaign_budgets",
    }


def test_monitor_dispatches_campaigns_in_batches():
    ids = [str(uuid.uuid4()) for _ in range(60)]
    batch_task = MagicMock()

    with patch("adwatch.tasks.budget_tasks._list_campaign_ids", new=AsyncMock(return_value=ids)), \
         patch("adwatch.tasks.budget_tasks.check_campaign_budget_batch", new=batch_task):
        result = monitor_campaign_budgets()

    assert result == {"campaigns": 60, "batches": 3}
    sizes = [len(call.args[0]) for call in batch_task.delay.call_args_list]
    assert sizes == [25, 25, 10]
    dispatched = [cid for call in batch_task.delay.call_args_list for cid in call.args[0]]
    assert dispatched == ids


def test_monitor_with_no_campaigns_dispatches_nothing():
    batch_task = MagicMock()

    with patch("adwatch.tasks.budget_tasks._list_campaign_ids", new=AsyncMock(return_value=[])), \
         patch("adwatch.tasks.budget_tasks.check_campaign_budget_batch", new=batch_task):
        result = monitor_campaign_budgets()

    assert result == {"campaigns": 0, "batches": 0}
    batch_task.delay.assert_not_called()


def test_batch_task_runs_monitor_for_its_campaigns():
    ids = [uuid.uuid4(), uuid.uuid4()]
    summary = {"campaigns_checked": 2, "alerts_created": 1, "alerts_updated": 0, "timestamp": "t"}
    monitor = AsyncMock(return_value=summary)

    with patch("adwatch.tasks.budget_tasks.async_session", new=MagicMock()), \
         patch("adwatch.tasks.budget_tasks.budget_monitor.monitor_budgets", new=monitor):
        result = check_campaign_budget_batch([str(i) for i in ids])

    assert result == summary
    assert monitor.await_args.kwargs["campaign_ids"] == ids


def test_sync_tasks_delegate_to_services():
    with patch("adwatch.tasks.sync_tasks.async_session", new=MagicMock()), \
         patch("adwatch.tasks.sync_tasks.scheduler.process_scheduled_syncs",
               new=AsyncMock(return_value={"processed": 2, "results": []})), \
         patch("adwatch.tasks.sync_tasks.google_sync.orchestrate_google_sync",
               new=AsyncMock(return_value={"integrations": 1, "succeeded": 1, "results": []})):
        assert process_scheduled_syncs()["processed"] == 2
        assert orchestrate_google_sync()["succeeded"] == 1

import logging

from fastapi import APIRouter, Depends, Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession

from adwatch.database import get_db
from adwatch.dependencies import require_service_key
from adwatch.services.budget_monitor import monitor_budgets
from adwatch.tasks.budget_tasks import monitor_campaign_budgets

logger = logging.getLogger(__name__)
router = APIRouter(dependencies=[Depends(require_service_key)])
limiter = Limiter(key_func=get_remote_address)


@router.post("/budgets")
@limiter.limit("10/minute")
async def run_budget_monitor(request: Request, db: AsyncSession = Depends(get_db)):
    """Run the budget monitor inline and return its counts."""
    result = await monitor_budgets(db)
    return {"success": True, "message": "Budget monitoring completed", **result}


@router.post("/budgets/enqueue", status_code=202)
@limiter.limit("10/minute")
async def enqueue_budget_monitor(request: Request):
    """Hand the run to the monitoring workers."""
    task = monitor_campaign_budgets.delay()
    logger.info("Budget monitor queued as task %s", task.id)
    return {"success": True, "task_id": task.id}

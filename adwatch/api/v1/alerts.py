import uuid

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from adwatch.database import get_db
from adwatch.dependencies import require_service_key
from adwatch.models.alert import CampaignAlert
from adwatch.services.budget_monitor import list_alerts, resolve_alert

router = APIRouter(dependencies=[Depends(require_service_key)])


class AlertResponse(BaseModel):
    id: str
    campaign_id: str
    alert_type: str
    threshold_amount: float
    current_amount: float
    is_active: bool
    triggered_at: str
    resolved_at: str | None = None


def _to_response(alert: CampaignAlert) -> AlertResponse:
    return AlertResponse(
        id=str(alert.id),
        campaign_id=str(alert.campaign_id),
        alert_type=alert.alert_type,
        threshold_amount=float(alert.threshold_amount),
        current_amount=float(alert.current_amount),
        is_active=alert.is_active,
        triggered_at=alert.triggered_at.isoformat(),
        resolved_at=alert.resolved_at.isoformat() if alert.resolved_at else None,
    )


@router.get("", response_model=list[AlertResponse])
async def get_alerts(
    campaign_id: uuid.UUID | None = Query(None),
    active_only: bool = Query(True),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    alerts = await list_alerts(db, campaign_id=campaign_id, active_only=active_only, limit=limit)
    return [_to_response(a) for a in alerts]


@router.post("/{alert_id}/resolve", response_model=AlertResponse)
async def resolve(alert_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    alert = await resolve_alert(db, alert_id)
    return _to_response(alert)

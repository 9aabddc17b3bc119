from fastapi import APIRouter
from adwatch.api.v1 import sync, monitor, alerts

api_router = APIRouter()

api_router.include_router(sync.router, prefix="/sync", tags=["Sync"])
api_router.include_router(monitor.router, prefix="/monitor", tags=["Budget Monitor"])
api_router.include_router(alerts.router, prefix="/alerts", tags=["Alerts"])

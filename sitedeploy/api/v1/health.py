"""Health check endpoints."""

from datetime import datetime

from fastapi import APIRouter
from pydantic import BaseModel

from sitedeploy import __version__
from sitedeploy.api.deps import SettingsDep, StoreDep

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "healthy"
    version: str
    environment: str
    approval_channel: str
    running_deployments: int
    awaiting_approval: int
    timestamp: datetime


@router.get("/health", response_model=HealthResponse)
async def health_check(store: StoreDep, settings: SettingsDep) -> HealthResponse:
    """Report liveness and how many deployments this process is driving."""
    return HealthResponse(
        status="healthy",
        version=__version__,
        environment=settings.app_env,
        approval_channel=settings.approval_channel,
        running_deployments=store.running_count(),
        awaiting_approval=store.awaiting_approval_count(),
        timestamp=datetime.utcnow(),
    )

"""Dependency injection for API endpoints."""

from typing import Annotated

from fastapi import Depends, HTTPException, status

from sitedeploy.config import Settings, get_settings
from sitedeploy.core.events import EventBus, get_event_bus
from sitedeploy.core.pipeline import Collaborators
from sitedeploy.core.store import DeploymentRun, DeploymentStore, get_deployment_store
from sitedeploy.wiring import get_service_clients


async def get_store() -> DeploymentStore:
    """Get the deployment store."""
    return get_deployment_store()


async def get_events() -> EventBus:
    """Get the event bus."""
    return get_event_bus()


async def get_app_settings() -> Settings:
    """Get the application settings."""
    return get_settings()


async def get_collaborators() -> Collaborators:
    """Get the external service clients for a new run."""
    return get_service_clients().collaborators()


async def get_run_by_id(
    deployment_id: str,
    store: Annotated[DeploymentStore, Depends(get_store)],
) -> DeploymentRun:
    """Get a deployment run by ID or raise 404."""
    run = store.get(deployment_id)
    if not run:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Deployment not found: {deployment_id}",
        )
    return run


# Type aliases for cleaner signatures
StoreDep = Annotated[DeploymentStore, Depends(get_store)]
EventsDep = Annotated[EventBus, Depends(get_events)]
CollaboratorsDep = Annotated[Collaborators, Depends(get_collaborators)]
SettingsDep = Annotated[Settings, Depends(get_app_settings)]
RunDep = Annotated[DeploymentRun, Depends(get_run_by_id)]

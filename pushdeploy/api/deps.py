"""Dependency injection for API endpoints."""

from typing import Annotated

from fastapi import Depends

from pushdeploy.config import Settings, get_settings
from pushdeploy.core.events import EventBus, get_event_bus
from pushdeploy.core.orchestrator import DeploymentOrchestrator, get_orchestrator


async def get_events() -> EventBus:
    """Get the event bus."""
    return get_event_bus()


async def get_deployment_orchestrator() -> DeploymentOrchestrator:
    """Get the deployment orchestrator."""
    return get_orchestrator()


# Type aliases for cleaner signatures
SettingsDep = Annotated[Settings, Depends(get_settings)]
EventsDep = Annotated[EventBus, Depends(get_events)]
OrchestratorDep = Annotated[DeploymentOrchestrator, Depends(get_deployment_orchestrator)]

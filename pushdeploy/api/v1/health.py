"""Health check endpoints."""

from datetime import datetime, timezone
from typing import Literal

from fastapi import APIRouter
from pydantic import BaseModel

from pushdeploy import __version__
from pushdeploy.api.deps import SettingsDep

router = APIRouter()

ConfigState = Literal["configured", "missing"]


class StorageHealth(BaseModel):
    """Presence of storage configuration."""

    region: ConfigState
    bucket: ConfigState


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "healthy"
    version: str
    environment: str
    timestamp: datetime
    storage: StorageHealth


def _state(value: str | None) -> ConfigState:
    return "configured" if value else "missing"


@router.get("/health", response_model=HealthResponse)
async def health_check(settings: SettingsDep) -> HealthResponse:
    """Check API health status."""
    return HealthResponse(
        status="healthy",
        version=__version__,
        environment=settings.app_env,
        timestamp=datetime.now(timezone.utc),
        storage=StorageHealth(
            region=_state(settings.aws_region),
            bucket="configured" if settings.storage_configured else "missing",
        ),
    )

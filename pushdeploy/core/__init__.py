"""Core functionality for pushdeploy."""

from pushdeploy.core.events import Event, EventBus, get_event_bus
from pushdeploy.core.exceptions import (
    ArtifactNotFoundError,
    BuildError,
    DeploymentStateError,
    FetchError,
    InvalidRepoUrlError,
    PublishError,
    PushDeployError,
    StorageConfigurationError,
)

__all__ = [
    "ArtifactNotFoundError",
    "BuildError",
    "DeploymentStateError",
    "Event",
    "EventBus",
    "FetchError",
    "InvalidRepoUrlError",
    "PublishError",
    "PushDeployError",
    "StorageConfigurationError",
    "get_event_bus",
]

"""Data models for pushdeploy."""

from pushdeploy.models.deployment import (
    Deployment,
    DeploymentAccepted,
    DeploymentCreate,
    DeploymentLog,
    DeploymentResult,
    DeploymentStatus,
    RepoRef,
)

__all__ = [
    "Deployment",
    "DeploymentAccepted",
    "DeploymentCreate",
    "DeploymentLog",
    "DeploymentResult",
    "DeploymentStatus",
    "RepoRef",
]

"""Deployment data models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeploymentStatus(str, Enum):
    """Deployment lifecycle status."""

    QUEUED = "queued"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (DeploymentStatus.SUCCESS, DeploymentStatus.FAILED)


class RepoRef(BaseModel):
    """Owner/name pair parsed from a GitHub URL."""

    owner: str
    repo: str

    @property
    def clone_url(self) -> str:
        return f"https://github.com/{self.owner}/{self.repo}"


class Deployment(BaseModel):
    """One deployment attempt."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    repo_url: str
    owner: str
    repo: str
    status: DeploymentStatus = DeploymentStatus.QUEUED
    created_at: datetime = Field(default_factory=_utcnow)
    url: str | None = None
    error: str | None = None

    @property
    def ref(self) -> RepoRef:
        return RepoRef(owner=self.owner, repo=self.repo)

    @property
    def metadata_key(self) -> str:
        return f"deployments/{self.id}/metadata.json"

    def to_metadata(self) -> dict[str, Any]:
        """Metadata record written to storage."""
        record = self.model_dump(
            mode="json",
            include={"id", "repo_url", "owner", "repo", "status", "created_at"},
        )
        if self.url:
            record["url"] = self.url
        if self.error:
            record["error"] = self.error
        return record


class DeploymentCreate(BaseModel):
    """Request model for starting a deployment."""

    repo_url: str | None = None


class DeploymentAccepted(BaseModel):
    """Response returned when a deployment is queued."""

    deployment_id: str
    deployment_url: str
    status: DeploymentStatus = DeploymentStatus.QUEUED
    message: str = "Deployment has been queued. Check the URL for status updates."


class DeploymentLog(BaseModel):
    """A timestamped log line."""

    timestamp: datetime
    message: str


class DeploymentResult(BaseModel):
    """Complete record of a finished deployment."""

    deployment_id: str
    repo_url: str
    deployment_url: str | None = None
    status: DeploymentStatus
    logs: list[DeploymentLog] = Field(default_factory=list)
    error: str | None = None
    created_at: datetime

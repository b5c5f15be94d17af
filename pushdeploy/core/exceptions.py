"""Custom exceptions for pushdeploy."""

from pathlib import Path
from typing import Any


class PushDeployError(Exception):
    """Base exception for pushdeploy."""

    stage: str = "internal"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class InvalidRepoUrlError(PushDeployError):
    """Repository URL is missing or not a canonical GitHub URL."""

    stage = "validation"

    def __init__(self, url: str | None):
        if not url:
            message = "Repository URL is required"
        else:
            message = (
                "Invalid GitHub repository URL. "
                "Format should be: https://github.com/username/repo"
            )
        super().__init__(message, {"repo_url": url})


class FetchError(PushDeployError):
    """Repository could not be downloaded, extracted or cloned."""

    stage = "fetch"


class BuildError(PushDeployError):
    """Missing manifest or a build command exited non-zero."""

    stage = "build"

    def __init__(
        self,
        message: str,
        command: str | None = None,
        exit_code: int | None = None,
    ):
        details: dict[str, Any] = {}
        if command is not None:
            details["command"] = command
        if exit_code is not None:
            details["exit_code"] = exit_code
        super().__init__(message, details)
        self.command = command
        self.exit_code = exit_code


class ArtifactNotFoundError(PushDeployError):
    """No publishable output directory exists after the build."""

    stage = "artifact"

    def __init__(self, path: Path | str):
        super().__init__(f"Output directory not found: {path}", {"path": str(path)})
        self.path = str(path)


class PublishError(PushDeployError):
    """An artifact upload failed."""

    stage = "publish"

    def __init__(self, key: str, message: str):
        super().__init__(f"Failed to upload {key}: {message}", {"key": key})
        self.key = key


class StorageConfigurationError(PushDeployError):
    """Storage credentials or bucket are misconfigured."""

    stage = "storage"


class DeploymentStateError(PushDeployError):
    """Illegal deployment lifecycle transition."""

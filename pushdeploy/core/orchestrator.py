"""Deployment Orchestrator.

Runs one deployment attempt through the pipeline and reports progress on
the event bus.

Pipeline stages:
1. fetch - download or clone the repository
2. build - npm install && npm run build
3. locate - pick the static output directory
4. publish - upload the output to object storage

The working directory is removed on every exit path before the terminal
event is published.
"""

import asyncio
import html
import json
import shutil
from functools import lru_cache
from pathlib import Path
from typing import AsyncIterator

import structlog

from pushdeploy.config import Settings, get_settings
from pushdeploy.core.events import Event, EventBus, LogSink, get_event_bus
from pushdeploy.core.exceptions import (
    DeploymentStateError,
    PushDeployError,
    StorageConfigurationError,
)
from pushdeploy.models.deployment import (
    Deployment,
    DeploymentLog,
    DeploymentResult,
    DeploymentStatus,
)
from pushdeploy.pipeline.builder import BuildRunner
from pushdeploy.pipeline.fetcher import RepositoryFetcher, parse_repo_url
from pushdeploy.pipeline.locator import ArtifactLocator
from pushdeploy.pipeline.publisher import Publisher
from pushdeploy.services.storage import ObjectStorage, get_storage
from pushdeploy.utils.logging import get_logger

STAGE_LABELS = {
    "fetch": "Fetch failed",
    "build": "Build failed",
    "artifact": "Artifact not found",
    "publish": "Publish failed",
    "storage": "Storage error",
}

PLACEHOLDER_HTML = """<!DOCTYPE html>
<html>
  <head>
    <title>Deployment in Progress</title>
    <meta http-equiv="refresh" content="30">
    <style>
      body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Helvetica, Arial, sans-serif; max-width: 650px; margin: 0 auto; padding: 20px; }}
      .container {{ text-align: center; margin-top: 50px; }}
      .spinner {{ display: inline-block; width: 50px; height: 50px; border: 3px solid rgba(0, 0, 0, 0.1); border-radius: 50%; border-top-color: #000; animation: spin 1s ease-in-out infinite; }}
      @keyframes spin {{ to {{ transform: rotate(360deg); }} }}
    </style>
  </head>
  <body>
    <div class="container">
      <div class="spinner"></div>
      <h1>Deployment in Progress</h1>
      <p>Your site is being built and deployed. This page will automatically refresh.</p>
      <p>Deployment ID: {deployment_id}</p>
      <p>Repository: {repo_url}</p>
    </div>
  </body>
</html>
"""


def render_placeholder(deployment: Deployment) -> str:
    """Status page shown until the real site is uploaded."""
    return PLACEHOLDER_HTML.format(
        deployment_id=html.escape(deployment.id),
        repo_url=html.escape(deployment.repo_url),
    )


def describe_error(error: Exception) -> str:
    """Human-readable message for the terminal error event."""
    if isinstance(error, PushDeployError):
        label = STAGE_LABELS.get(error.stage)
        return f"{label}: {error.message}" if label else error.message
    return str(error) or "An unknown error occurred"


class DeploymentOrchestrator:
    """Sequences fetch, build, locate and publish for one deployment."""

    def __init__(
        self,
        settings: Settings | None = None,
        storage: ObjectStorage | None = None,
        events: EventBus | None = None,
        fetcher: RepositoryFetcher | None = None,
        builder: BuildRunner | None = None,
        locator: ArtifactLocator | None = None,
        publisher: Publisher | None = None,
    ):
        self.settings = settings or get_settings()
        self.storage = storage or get_storage()
        self.events = events or get_event_bus()
        self.fetcher = fetcher or RepositoryFetcher(self.settings)
        self.builder = builder or BuildRunner(self.settings)
        self.locator = locator or ArtifactLocator(self.builder)
        self.publisher = publisher or Publisher(self.storage)
        self.logger = get_logger("orchestrator")

        self._tasks: set[asyncio.Task] = set()

    @property
    def work_root(self) -> Path:
        return Path(self.settings.work_root)

    def workdir_for(self, deployment_id: str) -> Path:
        return self.work_root / deployment_id

    def create(self, repo_url: str | None) -> Deployment:
        """Validate the URL and create a queued deployment.

        Raises:
            InvalidRepoUrlError: Before any side effect
        """
        ref = parse_repo_url(repo_url)
        deployment = Deployment(repo_url=repo_url, owner=ref.owner, repo=ref.repo)

        self.logger.info(
            "orchestrator.deployment.created",
            deployment_id=deployment.id,
            owner=ref.owner,
            repo=ref.repo,
        )
        return deployment

    async def accept(self, repo_url: str | None) -> Deployment:
        """Create a deployment and write its metadata record and status page.

        Raises:
            InvalidRepoUrlError: If the URL is malformed
            StorageConfigurationError: If storage cannot be written to
        """
        deployment = self.create(repo_url)

        try:
            await self._write_metadata(deployment)
            await self.storage.put_object(
                f"{deployment.id}/index.html",
                render_placeholder(deployment).encode("utf-8"),
                "text/html",
                public=True,
            )
        except StorageConfigurationError:
            raise
        except Exception as e:
            self.logger.error(
                "orchestrator.accept_failed",
                deployment_id=deployment.id,
                error=str(e),
            )
            raise StorageConfigurationError(
                "Failed to create deployment record in storage. "
                "Check your AWS credentials and permissions.",
                {"error": str(e)},
            ) from e

        return deployment

    async def run(self, deployment: Deployment) -> Deployment:
        """Run the pipeline for a queued deployment.

        Pipeline failures never propagate: they end the attempt with a
        single ``error`` event. Exactly one terminal event is published.

        Raises:
            DeploymentStateError: If the deployment is not queued
        """
        if deployment.status != DeploymentStatus.QUEUED:
            raise DeploymentStateError(
                f"Deployment {deployment.id} is {deployment.status.value}, not queued",
                {"deployment_id": deployment.id},
            )

        deployment.status = DeploymentStatus.RUNNING

        # Pipeline modules log without knowing the id; the context carries it
        with structlog.contextvars.bound_contextvars(deployment_id=deployment.id):
            await self._attempt(deployment)

        return deployment

    async def _attempt(self, deployment: Deployment) -> None:
        workdir = self.workdir_for(deployment.id)

        async def log(message: str) -> None:
            await self.events.publish_log(deployment.id, message)

        self.logger.info("orchestrator.deployment.started", repo_url=deployment.repo_url)

        try:
            url = await self._execute(deployment, workdir, log)
        except Exception as e:
            deployment.status = DeploymentStatus.FAILED
            deployment.error = describe_error(e)
            self.logger.error(
                "orchestrator.deployment.failed",
                stage=getattr(e, "stage", "internal"),
                error=str(e),
                exc_info=not isinstance(e, PushDeployError),
            )
        else:
            deployment.status = DeploymentStatus.SUCCESS
            deployment.url = url
            self.logger.info("orchestrator.deployment.completed", url=url)
        finally:
            await self._cleanup(deployment, workdir, log)

        await self._record_outcome(deployment)

        if deployment.status == DeploymentStatus.SUCCESS:
            await self.events.publish_complete(deployment.id, deployment.url)
        else:
            await self.events.publish_error(deployment.id, deployment.error)

    def stream(self, repo_url: str | None) -> AsyncIterator[Event]:
        """Validate ``repo_url`` now and return its live event stream.

        Raises:
            InvalidRepoUrlError: Synchronously, before anything runs
        """
        return self.follow(self.create(repo_url))

    async def follow(self, deployment: Deployment) -> AsyncIterator[Event]:
        """Start ``deployment`` and yield its events up to the terminal one."""
        queue = self.events.subscribe(deployment.id)
        task = self.start(deployment)

        try:
            while True:
                event = await queue.get()
                yield event
                if event.is_terminal:
                    break
        finally:
            self.events.unsubscribe(deployment.id)

        await task

    def start(self, deployment: Deployment) -> asyncio.Task:
        """Run ``deployment`` in the background."""
        task = asyncio.create_task(self.run(deployment))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def collect(self, repo_url: str | None) -> DeploymentResult:
        """Run a deployment to completion and return the full record."""
        deployment = self.create(repo_url)
        logs: list[DeploymentLog] = []

        async for event in self.follow(deployment):
            if event.event_type == "log":
                logs.append(
                    DeploymentLog(timestamp=event.timestamp, message=event.data["message"])
                )

        return DeploymentResult(
            deployment_id=deployment.id,
            repo_url=deployment.repo_url,
            deployment_url=deployment.url,
            status=deployment.status,
            logs=logs,
            error=deployment.error,
            created_at=deployment.created_at,
        )

    async def _execute(self, deployment: Deployment, workdir: Path, log: LogSink) -> str:
        await log(f"Starting deployment for {deployment.repo_url}")
        await log(f"Creating project directory: {deployment.id}")
        await asyncio.to_thread(self.work_root.mkdir, parents=True, exist_ok=True)

        await log(f"Downloading repository: {deployment.repo_url}")
        await self.fetcher.fetch(deployment.ref, workdir, log)
        await log("Repository downloaded successfully")

        await self.builder.run(workdir, log)

        artifact_dir = await self.locator.locate(workdir, log)
        await log(f"Using output directory: {artifact_dir.relative_to(workdir).as_posix()}")

        await log(f"Uploading files to S3 bucket: {self.settings.s3_bucket_name}")
        count = await self.publisher.publish(artifact_dir, deployment.id, log)
        await log(f"Files uploaded successfully ({count} files)")

        url = self.settings.public_url(deployment.id)
        await log(f"Deployment complete! Your site is available at: {url}")
        return url

    async def _cleanup(self, deployment: Deployment, workdir: Path, log: LogSink) -> None:
        await log("Cleaning up temporary files...")
        try:
            if workdir.exists():
                await asyncio.to_thread(shutil.rmtree, workdir)
        except OSError as e:
            self.logger.warning(
                "orchestrator.cleanup_failed",
                deployment_id=deployment.id,
                workdir=str(workdir),
                error=str(e),
            )
            await log(f"Cleanup failed: {e}")
        else:
            await log("Cleanup complete")

    async def _write_metadata(self, deployment: Deployment) -> None:
        await self.storage.put_object(
            deployment.metadata_key,
            json.dumps(deployment.to_metadata()).encode("utf-8"),
            "application/json",
        )

    async def _record_outcome(self, deployment: Deployment) -> None:
        try:
            await self._write_metadata(deployment)
        except Exception as e:
            self.logger.warning(
                "orchestrator.metadata_write_failed",
                deployment_id=deployment.id,
                error=str(e),
            )


@lru_cache
def get_orchestrator() -> DeploymentOrchestrator:
    """Get the orchestrator singleton."""
    return DeploymentOrchestrator()

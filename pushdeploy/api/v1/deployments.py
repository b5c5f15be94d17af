"""Deployment endpoints."""

import asyncio
import json
from typing import AsyncIterator

from fastapi import APIRouter, BackgroundTasks, HTTPException, status
from fastapi.responses import StreamingResponse
from sse_starlette.sse import EventSourceResponse

from pushdeploy.api.deps import EventsDep, OrchestratorDep, SettingsDep
from pushdeploy.api.middleware import DEPLOYMENT_ID_HEADER
from pushdeploy.core.events import Event
from pushdeploy.models.deployment import DeploymentAccepted, DeploymentCreate

router = APIRouter()

NDJSON_MEDIA_TYPE = "application/x-ndjson"
KEEPALIVE_SECONDS = 30.0


@router.post(
    "",
    summary="Deploy a repository",
    description=(
        "Validate the repository URL, record the deployment and stream its "
        "progress as newline-delimited JSON until it completes or fails."
    ),
    response_class=StreamingResponse,
)
async def create_deployment(
    data: DeploymentCreate,
    orchestrator: OrchestratorDep,
) -> StreamingResponse:
    """Start a deployment and stream its events."""
    deployment = await orchestrator.accept(data.repo_url)

    async def event_lines() -> AsyncIterator[str]:
        async for event in orchestrator.follow(deployment):
            yield event.to_json()

    return StreamingResponse(
        event_lines(),
        media_type=NDJSON_MEDIA_TYPE,
        headers={DEPLOYMENT_ID_HEADER: deployment.id},
    )


@router.post(
    "/queue",
    response_model=DeploymentAccepted,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Queue a deployment",
    description="Returns the deployment URL immediately while the build runs in background.",
)
async def queue_deployment(
    data: DeploymentCreate,
    orchestrator: OrchestratorDep,
    events: EventsDep,
    settings: SettingsDep,
    background_tasks: BackgroundTasks,
) -> DeploymentAccepted:
    """Queue a deployment; follow it on ``/{deployment_id}/stream``."""
    deployment = await orchestrator.accept(data.repo_url)

    # Buffer events until a stream client attaches; unclaimed buffers expire
    events.open(deployment.id)
    background_tasks.add_task(orchestrator.run, deployment)

    return DeploymentAccepted(
        deployment_id=deployment.id,
        deployment_url=settings.public_url(deployment.id),
    )


@router.get(
    "/{deployment_id}/stream",
    summary="Stream deployment events (SSE)",
)
async def stream_deployment_events(
    deployment_id: str,
    events: EventsDep,
) -> EventSourceResponse:
    """Stream real-time events for a queued deployment using Server-Sent Events."""
    if not events.is_subscribed(deployment_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No active deployment: {deployment_id}",
        )

    async def event_generator():
        queue = events.subscribe(deployment_id)

        try:
            yield {
                "event": "connected",
                "data": json.dumps({"deployment_id": deployment_id}),
            }

            while True:
                try:
                    event: Event = await asyncio.wait_for(
                        queue.get(), timeout=KEEPALIVE_SECONDS
                    )
                    yield event.to_sse()

                    if event.is_terminal:
                        break

                except asyncio.TimeoutError:
                    yield {"event": "keepalive", "data": "{}"}

        finally:
            events.unsubscribe(deployment_id)

    return EventSourceResponse(event_generator())

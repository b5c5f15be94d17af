"""Deployment event stream.

The orchestrator publishes ``log``, ``complete`` and ``error`` events to an
:class:`EventBus`; transports (NDJSON, SSE) subscribe to a deployment and
serialize what they receive.
"""

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Awaitable, Callable

from pushdeploy.utils.logging import get_logger

logger = get_logger("events")

LOG = "log"
COMPLETE = "complete"
ERROR = "error"

TERMINAL_EVENTS = frozenset({COMPLETE, ERROR})

# How long a finished, never-consumed buffer stays available
UNCLAIMED_TTL_SECONDS = 300.0

# Async callback that receives one progress line
LogSink = Callable[[str], Awaitable[None]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Event:
    """A single deployment event."""

    event_type: str
    data: dict[str, Any]
    timestamp: datetime = field(default_factory=_utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.event_type in TERMINAL_EVENTS

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.event_type,
            **self.data,
            "timestamp": self.timestamp.isoformat(),
        }

    def to_json(self) -> str:
        """Convert to a newline-delimited JSON record."""
        return json.dumps(self.to_dict()) + "\n"

    def to_sse(self) -> dict[str, str]:
        """Convert to an SSE message for ``EventSourceResponse``."""
        return {"event": self.event_type, "data": json.dumps(self.to_dict())}


class EventBus:
    """Per-deployment event queues.

    A queue can be opened before anyone consumes it so that early events are
    buffered. Once such a queue has received its terminal event and still
    has no consumer, it is dropped after ``unclaimed_ttl`` seconds.
    """

    def __init__(self, unclaimed_ttl: float = UNCLAIMED_TTL_SECONDS):
        self.unclaimed_ttl = unclaimed_ttl
        self._subscribers: dict[str, asyncio.Queue[Event]] = {}
        self._attached: set[str] = set()

    def open(self, deployment_id: str) -> asyncio.Queue[Event]:
        """Start buffering events for a deployment without consuming them."""
        if deployment_id not in self._subscribers:
            self._subscribers[deployment_id] = asyncio.Queue()
        return self._subscribers[deployment_id]

    def subscribe(self, deployment_id: str) -> asyncio.Queue[Event]:
        """Subscribe to events for a deployment."""
        self._attached.add(deployment_id)
        return self.open(deployment_id)

    def unsubscribe(self, deployment_id: str) -> None:
        """Unsubscribe from deployment events."""
        self._subscribers.pop(deployment_id, None)
        self._attached.discard(deployment_id)

    def is_subscribed(self, deployment_id: str) -> bool:
        return deployment_id in self._subscribers

    def is_attached(self, deployment_id: str) -> bool:
        return deployment_id in self._attached

    async def publish(self, deployment_id: str, event: Event) -> None:
        """Publish an event for a deployment."""
        queue = self._subscribers.get(deployment_id)
        if queue is None:
            return

        await queue.put(event)

        if event.is_terminal and deployment_id not in self._attached:
            asyncio.get_running_loop().call_later(
                self.unclaimed_ttl, self._expire, deployment_id, queue
            )

    def _expire(self, deployment_id: str, queue: asyncio.Queue[Event]) -> None:
        if deployment_id in self._attached or self._subscribers.get(deployment_id) is not queue:
            return
        self._subscribers.pop(deployment_id)
        logger.debug(
            "events.unclaimed_dropped",
            deployment_id=deployment_id,
            buffered=queue.qsize(),
        )

    async def publish_log(self, deployment_id: str, message: str) -> None:
        """Publish a log line."""
        await self.publish(
            deployment_id,
            Event(event_type=LOG, data={"message": message}),
        )

    async def publish_complete(self, deployment_id: str, url: str) -> None:
        """Publish the successful terminal event."""
        await self.publish(
            deployment_id,
            Event(event_type=COMPLETE, data={"url": url}),
        )

    async def publish_error(self, deployment_id: str, message: str) -> None:
        """Publish the failed terminal event."""
        await self.publish(
            deployment_id,
            Event(event_type=ERROR, data={"message": message}),
        )


@lru_cache
def get_event_bus() -> EventBus:
    """Get the event bus singleton."""
    return EventBus()

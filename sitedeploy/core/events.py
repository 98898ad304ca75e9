"""Event system for Server-Sent Events (SSE)."""

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

# Events after which a deployment's stream ends
TERMINAL_EVENTS = frozenset({"deployment_complete", "error"})


@dataclass
class Event:
    """An SSE event."""

    event_type: str
    data: dict[str, Any]
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_sse(self) -> dict[str, str]:
        """Convert to the message dict EventSourceResponse sends, with JSON data."""
        data_json = json.dumps({**self.data, "timestamp": self.timestamp.isoformat()})
        return {"event": self.event_type, "data": data_json}


class EventBus:
    """Simple event bus for deployment events."""

    def __init__(self):
        self._subscribers: dict[str, asyncio.Queue[Event]] = {}

    def subscribe(self, deployment_id: str) -> asyncio.Queue[Event]:
        """Subscribe to events for a deployment."""
        if deployment_id not in self._subscribers:
            self._subscribers[deployment_id] = asyncio.Queue()
        return self._subscribers[deployment_id]

    def unsubscribe(self, deployment_id: str) -> None:
        """Unsubscribe from deployment events."""
        self._subscribers.pop(deployment_id, None)

    async def publish(self, deployment_id: str, event: Event) -> None:
        """Publish an event for a deployment."""
        if deployment_id in self._subscribers:
            await self._subscribers[deployment_id].put(event)

    async def publish_stage_started(self, deployment_id: str, stage: str) -> None:
        await self.publish(
            deployment_id,
            Event(event_type="stage_started", data={"stage": stage}),
        )

    async def publish_stage_completed(
        self, deployment_id: str, stage: str, duration_ms: int
    ) -> None:
        await self.publish(
            deployment_id,
            Event(
                event_type="stage_completed",
                data={"stage": stage, "duration_ms": duration_ms},
            ),
        )

    async def publish_stage_failed(
        self, deployment_id: str, stage: str, error: str
    ) -> None:
        await self.publish(
            deployment_id,
            Event(event_type="stage_failed", data={"stage": stage, "error": error}),
        )

    async def publish_approval_requested(
        self, deployment_id: str, approvers: list[str]
    ) -> None:
        await self.publish(
            deployment_id,
            Event(event_type="approval_requested", data={"approvers": approvers}),
        )

    async def publish_approval_resolved(
        self, deployment_id: str, state: str, actor: str | None
    ) -> None:
        await self.publish(
            deployment_id,
            Event(event_type="approval_resolved", data={"state": state, "actor": actor}),
        )

    async def publish_deployment_complete(
        self, deployment_id: str, status: str, url: str | None = None
    ) -> None:
        """Publish a deployment complete event."""
        await self.publish(
            deployment_id,
            Event(
                event_type="deployment_complete",
                data={"status": status, "url": url},
            ),
        )

    async def publish_error(
        self, deployment_id: str, error: str, stage: str | None = None
    ) -> None:
        """Publish an error event."""
        await self.publish(
            deployment_id,
            Event(event_type="error", data={"error": error, "stage": stage}),
        )


# Singleton instance
_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Get the event bus singleton."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus

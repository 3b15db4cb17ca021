from __future__ import annotations

import uuid
from typing import Any

import structlog

from eventhub.realtime.registry import ChannelRegistry

logger = structlog.get_logger(__name__)

EVENT_CREATED = "eventCreated"
EVENT_UPDATED = "eventUpdated"
EVENT_DELETED = "eventDeleted"
ATTENDEE_UPDATE = "attendeeUpdate"


class Broadcaster:
    """Turns event mutations into push messages.

    Create/update/delete go to every connected client; attendee changes only
    reach clients subscribed to that event's channel.
    """

    def __init__(self, registry: ChannelRegistry) -> None:
        self.registry = registry

    def _publish(self, name: str, data: Any, channel: str | None = None) -> int:
        count = self.registry.publish({"event": name, "data": data}, channel=channel)
        logger.info("broadcast", message=name, channel=channel or "global", recipients=count)
        return count

    def event_created(self, event: dict[str, Any]) -> int:
        return self._publish(EVENT_CREATED, event)

    def event_updated(self, event: dict[str, Any]) -> int:
        return self._publish(EVENT_UPDATED, event)

    def event_deleted(self, event_id: uuid.UUID | str) -> int:
        return self._publish(EVENT_DELETED, str(event_id))

    def attendee_update(self, event: dict[str, Any]) -> int:
        return self._publish(ATTENDEE_UPDATE, event, channel=str(event["id"]))

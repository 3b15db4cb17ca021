from eventhub.realtime.broadcaster import (
    ATTENDEE_UPDATE,
    EVENT_CREATED,
    EVENT_DELETED,
    EVENT_UPDATED,
    Broadcaster,
)
from eventhub.realtime.registry import ChannelRegistry, Connection

__all__ = [
    "ChannelRegistry",
    "Connection",
    "Broadcaster",
    "EVENT_CREATED",
    "EVENT_UPDATED",
    "EVENT_DELETED",
    "ATTENDEE_UPDATE",
]

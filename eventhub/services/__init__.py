from eventhub.services.events_service import (
    EventPage,
    ImageUpload,
    create_event,
    delete_event,
    get_event,
    join_event,
    leave_event,
    list_events,
    search_events,
    update_event,
)

__all__ = [
    "EventPage",
    "ImageUpload",
    "search_events",
    "list_events",
    "get_event",
    "create_event",
    "update_event",
    "delete_event",
    "join_event",
    "leave_event",
]

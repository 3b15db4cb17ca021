from eventhub.api.v1.schemas.events import (
    EventCreate,
    EventListOut,
    EventOut,
    EventUpdate,
    MessageOut,
    Pagination,
    UserRef,
)

__all__ = [
    "EventCreate",
    "EventUpdate",
    "EventOut",
    "EventListOut",
    "Pagination",
    "UserRef",
    "MessageOut",
]

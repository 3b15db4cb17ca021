from eventhub.models.base import Base
from eventhub.models.event import Event
from eventhub.models.event_attendee import EventAttendee
from eventhub.models.user import User

__all__ = ["Base", "User", "Event", "EventAttendee"]

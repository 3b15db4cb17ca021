from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Integer, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from eventhub.models.base import Base, UUIDPrimaryKeyMixin, utcnow

if TYPE_CHECKING:
    from eventhub.models.event import Event
    from eventhub.models.user import User


class EventAttendee(Base, UUIDPrimaryKeyMixin):
    __tablename__ = "event_attendees"
    __table_args__ = (UniqueConstraint("event_id", "user_id", name="uq_event_attendee_event_user"),)

    event_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )

    # Join order within the event; gaps are left behind when attendees leave.
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    event: Mapped[Event] = relationship(back_populates="attendee_links")
    user: Mapped[User] = relationship(lazy="joined", innerjoin=True)

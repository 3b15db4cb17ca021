from __future__ import annotations

import math
import mimetypes
import re
import tempfile
import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, BinaryIO

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from eventhub.api.v1.schemas.events import EventCreate, EventOut, EventUpdate
from eventhub.core.config import settings
from eventhub.models import Event, EventAttendee, User
from eventhub.realtime.broadcaster import Broadcaster
from eventhub.services.error_codes import ErrorCode
from eventhub.services.exceptions import (
    AlreadyMemberError,
    EventFullError,
    ForbiddenError,
    NotFoundError,
    NotMemberError,
    StorageError,
    ValidationError,
)
from eventhub.storage.base import StorageAdapter

logger = structlog.get_logger(__name__)

EXTENSION_RE = re.compile(r"^\.[A-Za-z0-9]{1,8}$")


@dataclass
class ImageUpload:
    filename: str | None
    content_type: str | None
    file: BinaryIO


@dataclass
class EventPage:
    events: list[Event]
    current_page: int
    total_pages: int
    total_events: int

    @property
    def has_next_page(self) -> bool:
        return self.current_page < self.total_pages

    @property
    def has_prev_page(self) -> bool:
        return self.current_page > 1


@dataclass
class _LockEntry:
    lock: threading.Lock = field(default_factory=threading.Lock)
    holders: int = 0


class _EventLocks:
    """In-process mutual exclusion per event id.

    Paired with the row lock taken in ``_lock_event`` so membership checks
    and writes for one event never interleave, even on backends that ignore
    ``FOR UPDATE``. An entry lives only while some thread holds or waits on it.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[uuid.UUID, _LockEntry] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, event_id: uuid.UUID) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(event_id, _LockEntry())
            entry.holders += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._guard:
                entry.holders -= 1
                if entry.holders == 0:
                    del self._locks[event_id]


_event_locks = _EventLocks()


def serialize_event(event: Event) -> dict[str, Any]:
    return EventOut.model_validate(event).model_dump(mode="json", by_alias=True)


def _load_event(db: Session, event_id: uuid.UUID) -> Event:
    event = db.scalar(
        select(Event)
        .where(Event.id == event_id)
        .execution_options(populate_existing=True)
    )
    if not event:
        raise NotFoundError("Event not found")
    return event


def _lock_event(db: Session, event_id: uuid.UUID) -> Event:
    event = db.scalar(
        select(Event)
        .where(Event.id == event_id)
        .with_for_update(of=Event)
        .execution_options(populate_existing=True)
    )
    if not event:
        raise NotFoundError("Event not found")
    return event


def _require_creator(user: User, event: Event) -> None:
    if event.creator_id != user.id:
        raise ForbiddenError("Not authorized")


def _image_extension(image: ImageUpload, content_type: str) -> str:
    suffix = Path(image.filename or "").suffix.lower()
    if EXTENSION_RE.match(suffix):
        return suffix
    return mimetypes.guess_extension(content_type) or ""


@contextmanager
def _staged_image(image: ImageUpload) -> Iterator[tuple[BinaryIO, str, str]]:
    """Validate an upload and buffer it; yields (buffer, content type, storage key)."""
    content_type = (image.content_type or "").lower()
    if not content_type.startswith("image/"):
        raise ValidationError("only image uploads are allowed", ErrorCode.INVALID_IMAGE.value)

    max_size = settings.image_max_upload_bytes
    total_size = 0
    with tempfile.SpooledTemporaryFile(max_size=1024 * 1024, mode="w+b") as buffered:
        while True:
            chunk = image.file.read(1024 * 1024)
            if not chunk:
                break
            total_size += len(chunk)
            if total_size > max_size:
                raise ValidationError(
                    f"image exceeds max size of {max_size} bytes",
                    ErrorCode.IMAGE_TOO_LARGE.value,
                )
            buffered.write(chunk)

        if total_size == 0:
            raise ValidationError("uploaded image is empty", ErrorCode.INVALID_IMAGE.value)

        buffered.seek(0)
        yield buffered, content_type, f"events/{uuid.uuid4().hex}{_image_extension(image, content_type)}"


def _upload_staged(storage: StorageAdapter, staged: tuple[BinaryIO, str, str]) -> str:
    buffered, content_type, key = staged
    url = storage.put_file(key, buffered, content_type=content_type)
    logger.info("image_stored", key=key)
    return url


def _store_image(storage: StorageAdapter, image: ImageUpload) -> str:
    with _staged_image(image) as staged:
        return _upload_staged(storage, staged)


def _discard_image(storage: StorageAdapter, url: str | None) -> None:
    """Best-effort removal of a stored image; failures are logged, never raised."""
    if not url:
        return
    key = storage.key_for_url(url)
    if key is None:
        logger.warning("image_not_managed", url=url)
        return
    try:
        storage.delete(key)
    except (StorageError, ValueError) as exc:
        logger.warning("image_delete_failed", key=key, error=str(exc))
        return
    logger.info("image_deleted", key=key)


def search_events(
    db: Session,
    search: str | None = None,
    location: str | None = None,
) -> list[Event]:
    stmt = select(Event)
    if search:
        stmt = stmt.where(
            or_(
                Event.title.icontains(search, autoescape=True),
                Event.description.icontains(search, autoescape=True),
            )
        )
    if location:
        stmt = stmt.where(Event.location.icontains(location, autoescape=True))

    return list(db.scalars(stmt.order_by(Event.date.asc(), Event.id)).all())


def list_events(
    db: Session,
    category: str | None = None,
    min_date: datetime | None = None,
    page: int = 1,
    page_size: int | None = None,
) -> EventPage:
    page_size = page_size or settings.default_page_size
    if page < 1 or page_size < 1:
        raise ValueError("page and page_size must be >= 1")

    filters = []
    if category:
        filters.append(Event.category == category)
    if min_date:
        filters.append(Event.date >= min_date)

    total = int(db.scalar(select(func.count()).select_from(Event).where(*filters)) or 0)
    events = db.scalars(
        select(Event)
        .where(*filters)
        .order_by(Event.date.asc(), Event.id)
        .offset((page - 1) * page_size)
        .limit(page_size)
    ).all()

    return EventPage(
        events=list(events),
        current_page=page,
        total_pages=math.ceil(total / page_size),
        total_events=total,
    )


def get_event(db: Session, event_id: uuid.UUID) -> Event:
    return _load_event(db, event_id)


def create_event(
    db: Session,
    storage: StorageAdapter,
    broadcaster: Broadcaster,
    creator: User,
    payload: EventCreate,
    image: ImageUpload | None = None,
) -> Event:
    # Upload first: a failed upload must not leave an event behind.
    image_url = _store_image(storage, image) if image else None

    event = Event(
        title=payload.title,
        description=payload.description,
        date=payload.date,
        location=payload.location,
        category=payload.category,
        max_attendees=payload.max_attendees,
        image_url=image_url,
        creator_id=creator.id,
    )
    db.add(event)
    try:
        db.commit()
    except Exception:
        db.rollback()
        _discard_image(storage, image_url)
        raise

    event = _load_event(db, event.id)
    logger.info("event_created", event_id=str(event.id), creator_id=str(creator.id))
    broadcaster.event_created(serialize_event(event))
    return event


def update_event(
    db: Session,
    storage: StorageAdapter,
    broadcaster: Broadcaster,
    requester: User,
    event_id: uuid.UUID,
    patch: EventUpdate,
    image: ImageUpload | None = None,
) -> Event:
    new_image_url = None
    with _event_locks.hold(event_id):
        try:
            event = _lock_event(db, event_id)
            _require_creator(requester, event)

            patch_data = patch.model_dump(exclude_unset=True, exclude_none=True)
            new_capacity = patch_data.get("max_attendees")
            if new_capacity is not None and new_capacity < len(event.attendee_links):
                raise ValidationError(
                    "maxAttendees cannot be below the current attendee count",
                    ErrorCode.CAPACITY_BELOW_ATTENDEES.value,
                )

            if image:
                with _staged_image(image) as staged:
                    _discard_image(storage, event.image_url)
                    new_image_url = _upload_staged(storage, staged)
                    patch_data["image_url"] = new_image_url

            for key, value in patch_data.items():
                setattr(event, key, value)

            db.add(event)
            db.commit()
        except Exception:
            db.rollback()
            _discard_image(storage, new_image_url)
            raise

    event = _load_event(db, event_id)
    logger.info("event_updated", event_id=str(event_id), fields=sorted(patch_data))
    broadcaster.event_updated(serialize_event(event))
    return event


def delete_event(
    db: Session,
    storage: StorageAdapter,
    broadcaster: Broadcaster,
    requester: User,
    event_id: uuid.UUID,
) -> None:
    with _event_locks.hold(event_id):
        try:
            event = _lock_event(db, event_id)
            _require_creator(requester, event)
            image_url = event.image_url
            db.delete(event)
            db.commit()
        except Exception:
            db.rollback()
            raise

    _discard_image(storage, image_url)
    logger.info("event_deleted", event_id=str(event_id), creator_id=str(requester.id))
    broadcaster.event_deleted(event_id)


def join_event(
    db: Session,
    broadcaster: Broadcaster,
    user: User,
    event_id: uuid.UUID,
) -> Event:
    with _event_locks.hold(event_id):
        try:
            event = _lock_event(db, event_id)
            if event.has_attendee(user.id):
                raise AlreadyMemberError("Already joined")
            if len(event.attendee_links) >= event.max_attendees:
                raise EventFullError("Event is full")

            next_position = max((link.position for link in event.attendee_links), default=-1) + 1
            db.add(EventAttendee(event_id=event.id, user_id=user.id, position=next_position))
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise AlreadyMemberError("Already joined") from exc
        except Exception:
            db.rollback()
            raise

    event = _load_event(db, event_id)
    logger.info(
        "event_joined",
        event_id=str(event_id),
        user_id=str(user.id),
        attendees=len(event.attendee_links),
        max_attendees=event.max_attendees,
    )
    broadcaster.attendee_update(serialize_event(event))
    return event


def leave_event(
    db: Session,
    broadcaster: Broadcaster,
    user: User,
    event_id: uuid.UUID,
) -> Event:
    with _event_locks.hold(event_id):
        try:
            event = _lock_event(db, event_id)
            link = next((a for a in event.attendee_links if a.user_id == user.id), None)
            if link is None:
                raise NotMemberError("Not joined")

            event.attendee_links.remove(link)
            db.commit()
        except Exception:
            db.rollback()
            raise

    event = _load_event(db, event_id)
    logger.info("event_left", event_id=str(event_id), user_id=str(user.id))
    broadcaster.attendee_update(serialize_event(event))
    return event

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from eventhub.api.v1.schemas.events import (
    EventCreate,
    EventListOut,
    EventOut,
    EventUpdate,
    MessageOut,
    Pagination,
    as_utc,
)
from eventhub.auth.deps import CurrentUser
from eventhub.core.config import settings
from eventhub.db import get_db
from eventhub.realtime.broadcaster import Broadcaster
from eventhub.services import events_service
from eventhub.services.events_service import ImageUpload
from eventhub.storage import StorageAdapter, get_storage

router = APIRouter(prefix="/events", tags=["events"])


def get_broadcaster(request: Request) -> Broadcaster:
    return request.app.state.broadcaster


DBSession = Annotated[Session, Depends(get_db)]
Storage = Annotated[StorageAdapter, Depends(get_storage)]
EventBroadcaster = Annotated[Broadcaster, Depends(get_broadcaster)]
ImageFile = Annotated[UploadFile | None, File()]


def _validated(model: type[BaseModel], data: dict[str, Any]) -> Any:
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        raise RequestValidationError(exc.errors(include_url=False)) from None


def _image_upload(image: UploadFile | None) -> ImageUpload | None:
    # Browsers send an empty file part when no file was picked.
    if image is None or not image.filename:
        return None
    return ImageUpload(filename=image.filename, content_type=image.content_type, file=image.file)


@router.get("/search", response_model=list[EventOut])
def search_events(
    db: DBSession,
    search: str | None = Query(default=None),
    location: str | None = Query(default=None),
):
    return events_service.search_events(db, search=search, location=location)


@router.get("", response_model=EventListOut)
def list_events(
    db: DBSession,
    category: str | None = Query(default=None),
    date: datetime | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1),
):
    page_size = min(limit or settings.default_page_size, settings.max_page_size)
    result = events_service.list_events(
        db,
        category=category,
        min_date=as_utc(date),
        page=page,
        page_size=page_size,
    )
    return EventListOut(
        events=[EventOut.model_validate(event) for event in result.events],
        pagination=Pagination(
            current_page=result.current_page,
            total_pages=result.total_pages,
            total_events=result.total_events,
            has_next_page=result.has_next_page,
            has_prev_page=result.has_prev_page,
        ),
    )


@router.get("/{event_id}", response_model=EventOut)
def get_event(event_id: uuid.UUID, db: DBSession):
    return events_service.get_event(db, event_id)


@router.post("", response_model=EventOut, status_code=201)
def create_event(
    user: CurrentUser,
    db: DBSession,
    storage: Storage,
    broadcaster: EventBroadcaster,
    title: Annotated[str, Form()],
    description: Annotated[str, Form()],
    date: Annotated[str, Form()],
    location: Annotated[str, Form()],
    category: Annotated[str, Form()],
    max_attendees: Annotated[str, Form(alias="maxAttendees")],
    image: ImageFile = None,
):
    payload = _validated(
        EventCreate,
        {
            "title": title,
            "description": description,
            "date": date,
            "location": location,
            "category": category,
            "maxAttendees": max_attendees,
        },
    )
    return events_service.create_event(
        db, storage, broadcaster, user, payload, image=_image_upload(image)
    )


@router.put("/{event_id}", response_model=EventOut)
def update_event(
    event_id: uuid.UUID,
    user: CurrentUser,
    db: DBSession,
    storage: Storage,
    broadcaster: EventBroadcaster,
    title: Annotated[str | None, Form()] = None,
    description: Annotated[str | None, Form()] = None,
    date: Annotated[str | None, Form()] = None,
    location: Annotated[str | None, Form()] = None,
    category: Annotated[str | None, Form()] = None,
    max_attendees: Annotated[str | None, Form(alias="maxAttendees")] = None,
    image: ImageFile = None,
):
    fields = {
        "title": title,
        "description": description,
        "date": date,
        "location": location,
        "category": category,
        "maxAttendees": max_attendees,
    }
    patch = _validated(EventUpdate, {k: v for k, v in fields.items() if v is not None})
    return events_service.update_event(
        db, storage, broadcaster, user, event_id, patch, image=_image_upload(image)
    )


@router.delete("/{event_id}", response_model=MessageOut)
def delete_event(
    event_id: uuid.UUID,
    user: CurrentUser,
    db: DBSession,
    storage: Storage,
    broadcaster: EventBroadcaster,
):
    events_service.delete_event(db, storage, broadcaster, user, event_id)
    return MessageOut(message="Event removed")


@router.post("/{event_id}/join", response_model=EventOut)
def join_event(event_id: uuid.UUID, user: CurrentUser, db: DBSession, broadcaster: EventBroadcaster):
    return events_service.join_event(db, broadcaster, user, event_id)


@router.post("/{event_id}/leave", response_model=EventOut)
def leave_event(event_id: uuid.UUID, user: CurrentUser, db: DBSession, broadcaster: EventBroadcaster):
    return events_service.leave_event(db, broadcaster, user, event_id)

from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return value
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SchemaBase(BaseModel):
    model_config = ConfigDict(
        from_attributes=True,
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )


class EventCreate(SchemaBase):
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1)
    date: datetime
    location: str = Field(min_length=1, max_length=300)
    category: str = Field(min_length=1, max_length=100)
    max_attendees: int = Field(ge=1)

    @field_validator("title", "location", "category", mode="before")
    @classmethod
    def _strip(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("date", mode="after")
    @classmethod
    def _normalize_date(cls, value: datetime) -> datetime:
        return as_utc(value)


class EventUpdate(SchemaBase):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, min_length=1)
    date: datetime | None = None
    location: str | None = Field(default=None, min_length=1, max_length=300)
    category: str | None = Field(default=None, min_length=1, max_length=100)
    max_attendees: int | None = Field(default=None, ge=1)

    @field_validator("title", "location", "category", mode="before")
    @classmethod
    def _strip(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("date", mode="after")
    @classmethod
    def _normalize_date(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)


class UserRef(SchemaBase):
    id: UUID
    name: str
    email: str


class EventOut(SchemaBase):
    id: UUID
    title: str
    description: str
    date: datetime
    location: str
    category: str
    creator: UserRef
    attendees: list[UserRef]
    max_attendees: int
    image_url: str | None = None
    created_at: datetime
    updated_at: datetime

    @field_validator("date", "created_at", "updated_at", mode="after")
    @classmethod
    def _normalize_timestamps(cls, value: datetime) -> datetime:
        # SQLite hands back naive values; everything is stored as UTC.
        return as_utc(value)


class Pagination(SchemaBase):
    current_page: int = Field(ge=1)
    total_pages: int = Field(ge=0)
    total_events: int = Field(ge=0)
    has_next_page: bool
    has_prev_page: bool


class EventListOut(SchemaBase):
    events: list[EventOut]
    pagination: Pagination


class MessageOut(SchemaBase):
    message: str

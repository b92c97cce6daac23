"""Typed records exchanged with the backend."""

from __future__ import annotations

import datetime as dt
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EventStatus(str, Enum):
    UPCOMING = "upcoming"
    ONGOING = "ongoing"
    COMPLETED = "completed"


class Record(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class Profile(Record):
    id: str
    created_at: dt.datetime
    first_name: str
    last_name: str
    email: str
    avatar_url: str | None = None
    bio: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Event(Record):
    id: str
    created_at: dt.datetime
    title: str
    description: str
    date: dt.date
    time: str
    location: str
    image_url: str | None = None
    status: EventStatus = EventStatus.UPCOMING
    user_id: str


class EventAttendee(Record):
    id: str
    created_at: dt.datetime
    event_id: str
    user_id: str


class AttendeeWithProfile(EventAttendee):
    profile: Profile | None = None


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _check_web_url(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    if not cleaned.lower().startswith(("http://", "https://")) or " " in cleaned:
        raise ValueError("Please enter a valid URL.")
    return cleaned


class EventCreate(BaseModel):
    """Fields an organizer supplies when creating an event."""

    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    title: str = Field(min_length=3)
    description: str = Field(min_length=10)
    date: dt.date
    time: str = Field(min_length=1)
    location: str = Field(min_length=3)
    status: EventStatus = EventStatus.UPCOMING
    image_url: str | None = None

    @field_validator("title", "description", "time", "location", mode="before")
    @classmethod
    def _strip(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("image_url", mode="before")
    @classmethod
    def _blank_image(cls, value):
        return _blank_to_none(value)

    @field_validator("image_url")
    @classmethod
    def _valid_image(cls, value: str | None) -> str | None:
        return _check_web_url(value)


class EventUpdate(BaseModel):
    """Partial event update; only the fields that were set are written."""

    model_config = ConfigDict(use_enum_values=True)

    title: str | None = Field(None, min_length=3)
    description: str | None = Field(None, min_length=10)
    date: dt.date | None = None
    time: str | None = Field(None, min_length=1)
    location: str | None = Field(None, min_length=3)
    status: EventStatus | None = None
    image_url: str | None = None

    @field_validator("title", "description", "time", "location", mode="before")
    @classmethod
    def _strip(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("image_url", mode="before")
    @classmethod
    def _blank_image(cls, value):
        return _blank_to_none(value)

    @field_validator("image_url")
    @classmethod
    def _valid_image(cls, value: str | None) -> str | None:
        return _check_web_url(value)

    def changes(self, *, mode: str = "python") -> dict:
        data = self.model_dump(exclude_unset=True, mode=mode)
        # image_url may be cleared explicitly; the others are NOT NULL.
        return {
            key: value
            for key, value in data.items()
            if value is not None or key == "image_url"
        }


class ProfileCreate(BaseModel):
    id: str
    first_name: str
    last_name: str
    email: str


class ProfileUpdate(BaseModel):
    first_name: str | None = Field(None, min_length=2)
    last_name: str | None = Field(None, min_length=2)
    avatar_url: str | None = None
    bio: str | None = Field(None, max_length=500)

    @field_validator("first_name", "last_name", mode="before")
    @classmethod
    def _strip(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("avatar_url", "bio", mode="before")
    @classmethod
    def _blank(cls, value):
        return _blank_to_none(value)

    @field_validator("avatar_url")
    @classmethod
    def _valid_avatar(cls, value: str | None) -> str | None:
        return _check_web_url(value)

    def changes(self) -> dict:
        data = self.model_dump(exclude_unset=True)
        return {
            key: value
            for key, value in data.items()
            if value is not None or key in {"avatar_url", "bio"}
        }

"""Data gateway: typed CRUD over events, profiles and attendance.

Every operation is a single round trip to the backend. Nothing is cached and
nothing is retried; backend failures surface as :class:`GatewayError`.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from . import models
from .records import (
    AttendeeWithProfile,
    Event,
    EventAttendee,
    EventCreate,
    EventUpdate,
    Profile,
    ProfileCreate,
    ProfileUpdate,
)

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """Raised when the backend fails or rejects a data operation."""


class NotFoundError(GatewayError):
    """Raised when a record fetched by id does not exist."""


class PermissionDeniedError(GatewayError):
    """Raised when the acting user may not modify the record."""


class DataGateway(ABC):
    """Backend-agnostic CRUD contract used by the views and the session."""

    # Events

    @abstractmethod
    def get_events(self) -> list[Event]:
        """Return every event ordered by date ascending."""

    @abstractmethod
    def get_event(self, event_id: str) -> Event:
        """Return one event or raise :class:`NotFoundError`."""

    @abstractmethod
    def get_user_events(self, user_id: str) -> list[Event]:
        """Return the events organized by ``user_id`` ordered by date."""

    @abstractmethod
    def create_event(self, payload: EventCreate, *, user_id: str) -> Event: ...

    @abstractmethod
    def update_event(self, event_id: str, changes: EventUpdate) -> Event: ...

    @abstractmethod
    def delete_event(self, event_id: str) -> None: ...

    # Profiles

    @abstractmethod
    def get_profile(self, user_id: str) -> Profile: ...

    @abstractmethod
    def create_profile(self, payload: ProfileCreate) -> Profile: ...

    @abstractmethod
    def update_profile(self, user_id: str, changes: ProfileUpdate) -> Profile: ...

    # Attendance

    @abstractmethod
    def join_event(self, event_id: str, user_id: str) -> EventAttendee:
        """Attend an event; joining twice returns the existing row."""

    @abstractmethod
    def leave_event(self, event_id: str, user_id: str) -> int:
        """Stop attending; returns the number of rows removed (0 is fine)."""

    @abstractmethod
    def get_event_attendees(self, event_id: str) -> list[AttendeeWithProfile]: ...

    @abstractmethod
    def get_user_attending_events(self, user_id: str) -> list[Event]: ...

    def is_attending(self, event_id: str, user_id: str) -> bool:
        return any(
            row.user_id == user_id for row in self.get_event_attendees(event_id)
        )


@contextmanager
def _sql_errors(action: str) -> Iterator[None]:
    try:
        yield
    except GatewayError:
        raise
    except SQLAlchemyError as exc:
        logger.error("SQL backend failed to %s: %s", action, exc)
        raise GatewayError(f"Failed to {action}") from exc


class SqlGateway(DataGateway):
    """Gateway over the SQLAlchemy models.

    ``identity`` returns the id of the user the current auth session belongs
    to. Writes are checked against it the same way the hosted backend's
    row-level policies check ``auth.uid()``.
    """

    def __init__(
        self, session: Session, identity: Callable[[], str | None] = lambda: None
    ):
        self.session = session
        self._identity = identity

    def _require_identity(self, user_id: str, message: str) -> None:
        if self._identity() != user_id:
            raise PermissionDeniedError(message)

    def _event_row(self, event_id: str) -> models.Event:
        row = self.session.get(models.Event, event_id)
        if row is None:
            raise NotFoundError(f"Event {event_id} not found")
        return row

    def get_events(self) -> list[Event]:
        with _sql_errors("load events"):
            stmt = select(models.Event).order_by(
                models.Event.date.asc(), models.Event.created_at.asc()
            )
            return [Event.model_validate(row) for row in self.session.scalars(stmt)]

    def get_event(self, event_id: str) -> Event:
        with _sql_errors("load event"):
            return Event.model_validate(self._event_row(event_id))

    def get_user_events(self, user_id: str) -> list[Event]:
        with _sql_errors("load events"):
            stmt = (
                select(models.Event)
                .where(models.Event.user_id == user_id)
                .order_by(models.Event.date.asc(), models.Event.created_at.asc())
            )
            return [Event.model_validate(row) for row in self.session.scalars(stmt)]

    def create_event(self, payload: EventCreate, *, user_id: str) -> Event:
        self._require_identity(user_id, "Events can only be created as yourself")
        with _sql_errors("create event"):
            row = models.Event(user_id=user_id, **payload.model_dump())
            self.session.add(row)
            self.session.flush()
            logger.info("Event %s created by %s", row.id, user_id)
            return Event.model_validate(row)

    def update_event(self, event_id: str, changes: EventUpdate) -> Event:
        with _sql_errors("update event"):
            row = self._event_row(event_id)
            self._require_identity(
                row.user_id, "Only the organizer can update this event"
            )
            for key, value in changes.changes().items():
                setattr(row, key, value)
            self.session.add(row)
            self.session.flush()
            return Event.model_validate(row)

    def delete_event(self, event_id: str) -> None:
        with _sql_errors("delete event"):
            row = self._event_row(event_id)
            self._require_identity(
                row.user_id, "Only the organizer can delete this event"
            )
            self.session.delete(row)
            self.session.flush()
            logger.info("Event %s deleted", event_id)

    def get_profile(self, user_id: str) -> Profile:
        with _sql_errors("load profile"):
            row = self.session.get(models.Profile, user_id)
            if row is None:
                raise NotFoundError(f"Profile {user_id} not found")
            return Profile.model_validate(row)

    def create_profile(self, payload: ProfileCreate) -> Profile:
        self._require_identity(payload.id, "Profiles can only be created for yourself")
        with _sql_errors("create profile"):
            row = models.Profile(**payload.model_dump())
            self.session.add(row)
            self.session.flush()
            return Profile.model_validate(row)

    def update_profile(self, user_id: str, changes: ProfileUpdate) -> Profile:
        self._require_identity(user_id, "Only the owner can update this profile")
        with _sql_errors("update profile"):
            row = self.session.get(models.Profile, user_id)
            if row is None:
                raise NotFoundError(f"Profile {user_id} not found")
            for key, value in changes.changes().items():
                setattr(row, key, value)
            self.session.add(row)
            self.session.flush()
            return Profile.model_validate(row)

    def _attendance_row(self, event_id: str, user_id: str) -> models.EventAttendee | None:
        stmt = select(models.EventAttendee).where(
            models.EventAttendee.event_id == event_id,
            models.EventAttendee.user_id == user_id,
        )
        return self.session.scalars(stmt).first()

    def join_event(self, event_id: str, user_id: str) -> EventAttendee:
        self._require_identity(user_id, "You can only join events as yourself")
        with _sql_errors("join event"):
            self._event_row(event_id)
            existing = self._attendance_row(event_id, user_id)
            if existing is not None:
                return EventAttendee.model_validate(existing)
            try:
                with self.session.begin_nested():
                    row = models.EventAttendee(event_id=event_id, user_id=user_id)
                    self.session.add(row)
            except IntegrityError:
                # A concurrent join won the unique constraint.
                row = self._attendance_row(event_id, user_id)
                if row is None:
                    raise
            return EventAttendee.model_validate(row)

    def leave_event(self, event_id: str, user_id: str) -> int:
        self._require_identity(user_id, "You can only leave events as yourself")
        with _sql_errors("leave event"):
            stmt = select(models.EventAttendee).where(
                models.EventAttendee.event_id == event_id,
                models.EventAttendee.user_id == user_id,
            )
            rows = list(self.session.scalars(stmt))
            for row in rows:
                self.session.delete(row)
            self.session.flush()
            return len(rows)

    def get_event_attendees(self, event_id: str) -> list[AttendeeWithProfile]:
        with _sql_errors("load attendees"):
            stmt = (
                select(models.EventAttendee)
                .options(selectinload(models.EventAttendee.profile))
                .where(models.EventAttendee.event_id == event_id)
                .order_by(models.EventAttendee.created_at.asc())
            )
            return [
                AttendeeWithProfile.model_validate(row)
                for row in self.session.scalars(stmt)
            ]

    def get_user_attending_events(self, user_id: str) -> list[Event]:
        with _sql_errors("load events"):
            stmt = (
                select(models.Event)
                .join(models.EventAttendee)
                .where(models.EventAttendee.user_id == user_id)
                .order_by(models.Event.date.asc(), models.Event.created_at.asc())
            )
            return [Event.model_validate(row) for row in self.session.scalars(stmt)]

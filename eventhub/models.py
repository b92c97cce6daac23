"""SQLAlchemy models for the SQL backend."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

from .utils import utcnow

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return utcnow()


class AuthUser(Base):
    __tablename__ = "auth_users"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=False)
    user_metadata = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=_now, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)

    sessions = relationship(
        "AuthSession", back_populates="user", cascade="all, delete-orphan"
    )


class AuthSession(Base):
    __tablename__ = "auth_sessions"

    access_token = Column(String(128), primary_key=True)
    refresh_token = Column(String(128), nullable=False, unique=True)
    user_id = Column(
        String(36), ForeignKey("auth_users.id", ondelete="CASCADE"), nullable=False
    )
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)

    user = relationship("AuthUser", back_populates="sessions")


class AuthRecoveryToken(Base):
    __tablename__ = "auth_recovery_tokens"

    token = Column(String(128), primary_key=True)
    user_id = Column(
        String(36), ForeignKey("auth_users.id", ondelete="CASCADE"), nullable=False
    )
    expires_at = Column(DateTime, nullable=False)
    used = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True)
    first_name = Column(String(120), nullable=False)
    last_name = Column(String(120), nullable=False)
    email = Column(String(255), nullable=False)
    avatar_url = Column(Text, nullable=True)
    bio = Column(Text, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)

    events = relationship("Event", back_populates="organizer")


class Event(Base):
    __tablename__ = "events"

    id = Column(String(36), primary_key=True, default=_uuid)
    created_at = Column(DateTime, default=_now, nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    date = Column(Date, nullable=False, index=True)
    time = Column(String(64), nullable=False)
    location = Column(String(255), nullable=False)
    image_url = Column(Text, nullable=True)
    status = Column(String(16), nullable=False, default="upcoming")
    user_id = Column(
        String(36), ForeignKey("profiles.id"), nullable=False, index=True
    )

    organizer = relationship("Profile", back_populates="events")
    attendees = relationship(
        "EventAttendee",
        back_populates="event",
        cascade="all, delete-orphan",
    )


class EventAttendee(Base):
    __tablename__ = "event_attendees"
    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_attendees_event_user"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    created_at = Column(DateTime, default=_now, nullable=False)
    event_id = Column(
        String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(
        String(36),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    event = relationship("Event", back_populates="attendees")
    profile = relationship("Profile")

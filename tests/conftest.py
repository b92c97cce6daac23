"""Shared pytest fixtures for EventHub."""

from __future__ import annotations

import os
import sys
from datetime import date
from pathlib import Path

os.environ["EVENTHUB_BACKEND"] = "sql"
os.environ.setdefault("EVENTHUB_DATABASE_URL", "sqlite+pysqlite:///:memory:")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import scoped_session, sessionmaker
from sqlalchemy.pool import StaticPool

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from eventhub import database, storage
from eventhub.backend import build_sql_backend
from eventhub.config import settings
from eventhub.models import Base
from eventhub.records import EventCreate
from eventhub.session import SessionManager

PASSWORD = "correct-horse"


@pytest.fixture(scope="session", autouse=True)
def configure_in_memory_db():
    """Reuse a single in-memory SQLite database for fast, isolated tests."""

    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    session_factory = scoped_session(
        sessionmaker(
            bind=engine,
            autoflush=False,
            autocommit=False,
            future=True,
            expire_on_commit=False,
        )
    )
    database.engine = engine
    database.SessionLocal = session_factory
    storage.engine = engine
    Base.metadata.create_all(bind=engine)
    yield
    session_factory.remove()


@pytest.fixture(autouse=True)
def clean_database():
    """Reset all tables between tests to guarantee isolation."""

    Base.metadata.drop_all(bind=database.engine)
    Base.metadata.create_all(bind=database.engine)
    yield


@pytest.fixture()
def session():
    db = database.SessionLocal()
    try:
        yield db
    finally:
        db.rollback()
        db.close()


@pytest.fixture()
def backend(session):
    built = build_sql_backend(session, settings)
    try:
        yield built
    finally:
        built.close()


@pytest.fixture()
def manager(backend):
    with SessionManager(backend, site_url="http://testserver") as current:
        current.bootstrap()
        yield current


@pytest.fixture()
def register(manager):
    """Sign up through the session manager and return the new profile."""

    def _register(email: str, *, first: str = "Ada", last: str = "Lovelace"):
        result = manager.sign_up(email, PASSWORD, first, last)
        assert result.ok, result.error
        return manager.user

    return _register


def make_event_payload(**overrides) -> EventCreate:
    data = {
        "title": "Community Meetup",
        "description": "Monthly get-together for local builders.",
        "date": date(2030, 5, 17),
        "time": "6:30 PM",
        "location": "Town Hall",
    }
    data.update(overrides)
    return EventCreate(**data)


@pytest.fixture()
def event_payload():
    return make_event_payload

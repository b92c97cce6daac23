from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from eventhub import models
from eventhub.gateway import GatewayError, NotFoundError, PermissionDeniedError
from eventhub.records import EventStatus, EventUpdate, ProfileUpdate

PASSWORD = "correct-horse"


def test_create_then_get_returns_supplied_fields(manager, register, event_payload):
    ada = register("ada@example.com")
    payload = event_payload(image_url="https://example.com/meetup.png")

    created = manager.gateway.create_event(payload, user_id=ada.id)
    fetched = manager.gateway.get_event(created.id)

    assert fetched.id == created.id
    assert fetched.created_at is not None
    assert fetched.title == payload.title
    assert fetched.description == payload.description
    assert fetched.date == payload.date
    assert fetched.time == payload.time
    assert fetched.location == payload.location
    assert fetched.image_url == "https://example.com/meetup.png"
    assert fetched.status == EventStatus.UPCOMING
    assert fetched.user_id == ada.id


def test_get_user_events_returns_only_organizer_events_by_date(
    manager, register, event_payload
):
    ada = register("ada@example.com")
    late = manager.gateway.create_event(
        event_payload(title="Summer Social", date=date(2030, 7, 1)), user_id=ada.id
    )
    early = manager.gateway.create_event(
        event_payload(title="Winter Social", date=date(2030, 1, 15)), user_id=ada.id
    )
    grace = register("grace@example.com", first="Grace", last="Hopper")
    other = manager.gateway.create_event(
        event_payload(title="Compiler Night", date=date(2030, 3, 3)), user_id=grace.id
    )

    assert [event.id for event in manager.gateway.get_user_events(ada.id)] == [
        early.id,
        late.id,
    ]
    assert [event.id for event in manager.gateway.get_events()] == [
        early.id,
        other.id,
        late.id,
    ]


def test_get_event_missing_raises_not_found(manager):
    with pytest.raises(NotFoundError):
        manager.gateway.get_event("missing")


def test_join_twice_keeps_a_single_row(manager, register, event_payload):
    ada = register("ada@example.com")
    event = manager.gateway.create_event(event_payload(), user_id=ada.id)
    grace = register("grace@example.com", first="Grace", last="Hopper")

    first = manager.gateway.join_event(event.id, grace.id)
    second = manager.gateway.join_event(event.id, grace.id)

    assert first.id == second.id
    attendees = manager.gateway.get_event_attendees(event.id)
    assert [row.user_id for row in attendees] == [grace.id]
    assert attendees[0].profile.first_name == "Grace"
    assert manager.gateway.is_attending(event.id, grace.id)


def test_leave_removes_row_and_tolerates_absence(manager, register, event_payload):
    ada = register("ada@example.com")
    event = manager.gateway.create_event(event_payload(), user_id=ada.id)
    grace = register("grace@example.com", first="Grace", last="Hopper")
    manager.gateway.join_event(event.id, grace.id)

    assert manager.gateway.leave_event(event.id, grace.id) == 1
    assert manager.gateway.get_event_attendees(event.id) == []
    assert manager.gateway.leave_event(event.id, grace.id) == 0
    assert not manager.gateway.is_attending(event.id, grace.id)


def test_attending_events_follow_attendance_rows(manager, register, event_payload):
    ada = register("ada@example.com")
    later = manager.gateway.create_event(
        event_payload(title="Later", date=date(2031, 2, 1)), user_id=ada.id
    )
    sooner = manager.gateway.create_event(
        event_payload(title="Sooner", date=date(2030, 2, 1)), user_id=ada.id
    )
    manager.gateway.create_event(event_payload(title="Skipped"), user_id=ada.id)
    grace = register("grace@example.com", first="Grace", last="Hopper")
    manager.gateway.join_event(later.id, grace.id)
    manager.gateway.join_event(sooner.id, grace.id)

    attending = manager.gateway.get_user_attending_events(grace.id)

    assert [event.id for event in attending] == [sooner.id, later.id]


def test_update_event_only_writes_supplied_fields(manager, register, event_payload):
    ada = register("ada@example.com")
    event = manager.gateway.create_event(
        event_payload(image_url="https://example.com/a.png"), user_id=ada.id
    )

    renamed = manager.gateway.update_event(event.id, EventUpdate(title="Renamed Meetup"))
    assert renamed.title == "Renamed Meetup"
    assert renamed.location == event.location
    assert renamed.image_url == "https://example.com/a.png"

    cleared = manager.gateway.update_event(
        event.id, EventUpdate(image_url=None, status=EventStatus.ONGOING)
    )
    assert cleared.image_url is None
    assert cleared.status == EventStatus.ONGOING


def test_non_organizer_cannot_update_or_delete(manager, register, event_payload):
    ada = register("ada@example.com")
    event = manager.gateway.create_event(event_payload(), user_id=ada.id)
    register("grace@example.com", first="Grace", last="Hopper")

    with pytest.raises(PermissionDeniedError):
        manager.gateway.update_event(event.id, EventUpdate(title="Hijacked"))
    with pytest.raises(PermissionDeniedError):
        manager.gateway.delete_event(event.id)

    assert manager.gateway.get_event(event.id).title == event.title


def test_cannot_create_events_for_someone_else(manager, register, event_payload):
    ada = register("ada@example.com")
    register("grace@example.com", first="Grace", last="Hopper")

    with pytest.raises(PermissionDeniedError):
        manager.gateway.create_event(event_payload(), user_id=ada.id)


def test_delete_event_removes_attendance(session, manager, register, event_payload):
    ada = register("ada@example.com")
    event = manager.gateway.create_event(event_payload(), user_id=ada.id)
    grace = register("grace@example.com", first="Grace", last="Hopper")
    manager.gateway.join_event(event.id, grace.id)
    assert manager.sign_in("ada@example.com", PASSWORD).ok

    manager.gateway.delete_event(event.id)

    assert manager.gateway.get_events() == []
    with pytest.raises(NotFoundError):
        manager.gateway.get_event(event.id)
    assert session.scalars(select(models.EventAttendee)).all() == []


def test_update_profile_requires_owner(manager, register):
    ada = register("ada@example.com")
    grace = register("grace@example.com", first="Grace", last="Hopper")

    updated = manager.gateway.update_profile(
        grace.id, ProfileUpdate(bio="Wrote the first compiler.")
    )
    assert updated.bio == "Wrote the first compiler."
    with pytest.raises(PermissionDeniedError):
        manager.gateway.update_profile(ada.id, ProfileUpdate(bio="Not mine"))


def test_database_failures_surface_as_gateway_errors(manager, monkeypatch):
    def broken(*_args, **_kwargs):
        raise SQLAlchemyError("disk I/O error")

    monkeypatch.setattr(manager.gateway.session, "scalars", broken)

    with pytest.raises(GatewayError) as excinfo:
        manager.gateway.get_events()
    assert str(excinfo.value) == "Failed to load events"

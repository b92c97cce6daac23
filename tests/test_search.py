from __future__ import annotations

from datetime import date, datetime

from eventhub.records import Event, EventStatus
from eventhub.search import filter_events, filter_view, normalize_view


def _event(event_id: str, title: str, *, status=EventStatus.UPCOMING, **extra) -> Event:
    data = {
        "id": event_id,
        "created_at": datetime(2030, 1, 1, 9, 0),
        "title": title,
        "description": "Bring a friend.",
        "date": date(2030, 5, 17),
        "time": "6:30 PM",
        "location": "Town Hall",
        "status": status,
        "user_id": "user-1",
    }
    data.update(extra)
    return Event(**data)


EVENTS = [
    _event("1", "Python Meetup"),
    _event("2", "Book Club", description="Reading python classics."),
    _event("3", "Board Games", location="Pythonic Pub", status=EventStatus.COMPLETED),
    _event("4", "Gardening", status=EventStatus.ONGOING),
]


def test_blank_query_returns_every_event_in_order():
    assert filter_events(EVENTS, "") == EVENTS
    assert filter_events(EVENTS, "   ") == EVENTS
    assert filter_events(EVENTS, None) == EVENTS


def test_query_matches_title_description_and_location_case_insensitively():
    matched = filter_events(EVENTS, "PYTHON")
    assert [event.id for event in matched] == ["1", "2", "3"]


def test_query_without_matches_returns_empty_list():
    assert filter_events(EVENTS, "karaoke") == []


def test_unknown_view_falls_back_to_upcoming():
    assert normalize_view("all") == "all"
    assert normalize_view("past") == "upcoming"
    assert normalize_view(None) == "upcoming"


def test_filter_view_keeps_upcoming_unless_all_requested():
    assert [event.id for event in filter_view(EVENTS, "upcoming")] == ["1", "2"]
    assert [event.id for event in filter_view(EVENTS, None)] == ["1", "2"]
    assert filter_view(EVENTS, "all") == EVENTS


def test_query_whitespace_is_part_of_the_match():
    events = [
        _event("1", "Civic Forum"),
        _event("2", "Open House", location="Hallway"),
    ]
    assert [event.id for event in filter_events(events, " hall")] == ["1"]
    assert [event.id for event in filter_events(events, "hall")] == ["1", "2"]

"""In-memory search over fetched event lists."""

from __future__ import annotations

from collections.abc import Iterable

from .records import Event, EventStatus

VIEWS = ("upcoming", "all")


def matches(event: Event, query: str) -> bool:
    if not query.strip():
        return True
    needle = query.lower()
    return any(
        needle in (value or "").lower()
        for value in (event.title, event.description, event.location)
    )


def filter_events(events: Iterable[Event], query: str | None) -> list[Event]:
    """Keep events whose title, description or location contain ``query``.

    A missing or blank query returns every event unchanged.
    """
    events = list(events)
    if not query or not query.strip():
        return events
    return [event for event in events if matches(event, query)]


def normalize_view(view: str | None) -> str:
    return view if view in VIEWS else "upcoming"


def filter_view(events: Iterable[Event], view: str | None) -> list[Event]:
    if normalize_view(view) == "all":
        return list(events)
    return [event for event in events if event.status == EventStatus.UPCOMING]

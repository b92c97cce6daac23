"""Utility helpers for EventHub."""

from __future__ import annotations

from datetime import UTC, date, datetime


def utcnow() -> datetime:
    """Return a naive UTC datetime."""

    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def format_event_date(value: date | None) -> str:
    """Render a date as 'March 5, 2025'."""
    if not value:
        return ""
    return f"{value:%B} {value.day}, {value.year}"


def initials(first_name: str | None, last_name: str | None) -> str:
    return f"{(first_name or '')[:1]}{(last_name or '')[:1]}".upper()


def humanize_time(value: datetime | None, *, now: datetime | None = None) -> str:
    """Return a friendly string such as 'in 2 weeks' or '3 hours ago'."""
    if not value:
        return ""
    value = to_naive_utc(value)
    now = now or utcnow()
    delta_seconds = (value - now).total_seconds()
    past = delta_seconds < 0
    seconds = abs(delta_seconds)

    units = [
        ("year", 365 * 24 * 3600),
        ("month", 30 * 24 * 3600),
        ("week", 7 * 24 * 3600),
        ("day", 24 * 3600),
        ("hour", 3600),
        ("minute", 60),
    ]

    amount = 0
    label = "minute"
    for name, step in units:
        value_count = int(seconds // step)
        if value_count >= 1:
            amount = value_count
            label = name
            break
    else:
        return "in moments" if not past else "moments ago"

    if amount != 1:
        label = f"{label}s"
    if past:
        return f"{amount} {label} ago"
    return f"in {amount} {label}"

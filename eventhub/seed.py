"""Development helpers for populating fake users, events and attendance."""

from __future__ import annotations

import logging
import random
from datetime import timedelta

from faker import Faker

from .backend import open_backend
from .config import settings
from .records import EventCreate, EventStatus
from .session import SessionManager
from .storage import init_db
from .utils import utcnow

logger = logging.getLogger(__name__)

DEMO_PASSWORD = "eventhub-demo"

_event_types = [
    "Meetup",
    "Workshop",
    "Hackathon",
    "Book Club",
    "Picnic",
    "Game Night",
    "Dinner",
    "Panel Discussion",
]
_times = ["9:00 AM", "11:30 AM", "1:00 PM", "4:30 PM", "6:00 PM", "7:30 PM"]


def seed_fake_data(
    *,
    user_count: int = 5,
    max_events_per_user: int = 2,
    max_attendees_per_event: int = 3,
    password: str = DEMO_PASSWORD,
) -> dict[str, int]:
    """Register fake users through the configured backend and fill in events."""
    if user_count < 0:
        raise ValueError("user_count must be >= 0")
    if max_events_per_user < 0:
        raise ValueError("max_events_per_user must be >= 0")
    if max_attendees_per_event < 0:
        raise ValueError("max_attendees_per_event must be >= 0")

    if settings.backend == "sql":
        init_db()
    fake = Faker()
    stats = {"users": 0, "events": 0, "attendees": 0}
    members: list[tuple[str, str]] = []
    organized: list[tuple[str, str]] = []

    with open_backend(settings) as backend, SessionManager(
        backend, site_url=settings.site_url
    ) as manager:
        for _ in range(user_count):
            first_name, last_name = fake.first_name(), fake.last_name()
            suffix = fake.unique.random_int(1, 99999)
            email = f"{first_name}.{last_name}.{suffix}@example.com".lower()
            result = manager.sign_up(email, password, first_name, last_name)
            if not result.ok or manager.user is None:
                logger.warning(
                    "Skipping seed user %s: %s", email, result.error or result.notice
                )
                continue
            stats["users"] += 1
            members.append((email, manager.user.id))
            for _ in range(random.randint(0, max_events_per_user)):
                event = manager.gateway.create_event(
                    _event_payload(fake), user_id=manager.user.id
                )
                organized.append((event.id, manager.user.id))
                stats["events"] += 1
            manager.sign_out()

        joins = _plan_attendance(members, organized, max_attendees_per_event)
        for email, event_ids in joins.items():
            if not manager.sign_in(email, password).ok:
                continue
            for event_id in event_ids:
                manager.gateway.join_event(event_id, manager.user.id)
                stats["attendees"] += 1
            manager.sign_out()

    return stats


def _event_payload(fake: Faker) -> EventCreate:
    day_offset = random.randint(-14, 45)
    event_date = (utcnow() + timedelta(days=day_offset)).date()
    if day_offset < 0:
        status = EventStatus.COMPLETED
    elif day_offset == 0:
        status = EventStatus.ONGOING
    else:
        status = EventStatus.UPCOMING
    return EventCreate(
        title=f"{fake.city()} {random.choice(_event_types)}",
        description="\n\n".join(fake.paragraphs(nb=2)),
        date=event_date,
        time=random.choice(_times),
        location=fake.address().replace("\n", ", "),
        status=status,
    )


def _plan_attendance(
    members: list[tuple[str, str]],
    organized: list[tuple[str, str]],
    max_attendees: int,
) -> dict[str, list[str]]:
    """Pick attendees per event, grouped by user so each signs in once."""
    joins: dict[str, list[str]] = {}
    if max_attendees <= 0:
        return joins
    for event_id, organizer_id in organized:
        guests = [email for email, user_id in members if user_id != organizer_id]
        count = random.randint(0, min(max_attendees, len(guests)))
        for email in random.sample(guests, count):
            joins.setdefault(email, []).append(event_id)
    return joins

"""Development helpers for generating a fake venue catalog and happenings."""

from __future__ import annotations

import random
from typing import Any

from faker import Faker

from .dates import DAY_NAMES, add_days, day_name_from_date_key, parse_date_key
from .venues import generate_match_slug

_venue_suffixes = [
    "Brewhouse",
    "Taproom",
    "Cafe",
    "Lounge",
    "Listening Room",
    "Coffee House",
    "Tavern",
    "Studios",
]
_event_types = [
    "Open Mic",
    "Song Circle",
    "Jam Session",
    "Songwriter Showcase",
    "Blues Jam",
    "Poetry Night",
    "Comedy Open Mic",
]
_recurrence_rules = [
    "weekly",
    "weekly",
    "weekly",
    "biweekly",
    "1st",
    "2nd",
    "3rd",
    "last",
    "1st/3rd",
    "2nd/4th",
    "custom",
    "one-time",
]
_start_times = ["18:00:00", "18:30:00", "19:00:00", "19:30:00", "20:00:00"]


def seed_fake_data(
    *,
    venue_count: int = 10,
    event_count: int = 25,
    today_key: str,
    seed: int | None = None,
) -> dict[str, list[dict[str, Any]]]:
    """Return synthetic venues and happenings as storage-shaped rows.

    The same ``seed`` and ``today_key`` always produce the same rows.
    """
    if venue_count < 0:
        raise ValueError("venue_count must be >= 0")
    if event_count < 0:
        raise ValueError("event_count must be >= 0")
    parse_date_key(today_key)

    rng = random.Random(seed)
    fake = Faker()
    if seed is not None:
        fake.seed_instance(seed)

    taken: set[str] = set()
    venues = [_create_venue(fake, rng, taken=taken) for _ in range(venue_count)]

    events = [
        _create_event(fake, rng, venues=venues, today_key=today_key)
        for _ in range(event_count)
    ]
    return {"venues": venues, "events": events}


def _create_venue(fake: Faker, rng: random.Random, *, taken: set[str]) -> dict[str, Any]:
    for _ in range(20):
        name = f"{fake.last_name()} {rng.choice(_venue_suffixes)}"
        slug = generate_match_slug(name)
        if not slug or slug in taken:
            continue
        taken.add(slug)
        return {"id": fake.uuid4(), "name": name, "slug": slug}
    raise RuntimeError("Failed to create a unique venue name")


def _create_event(
    fake: Faker,
    rng: random.Random,
    *,
    venues: list[dict[str, Any]],
    today_key: str,
) -> dict[str, Any]:
    venue = rng.choice(venues) if venues else None
    rule = rng.choice(_recurrence_rules)
    event: dict[str, Any] = {
        "id": fake.uuid4(),
        "title": f"{fake.city()} {rng.choice(_event_types)}",
        "description": fake.sentence(nb_words=12),
        "start_time": rng.choice(_start_times),
        "event_date": None,
        "day_of_week": None,
        "recurrence_rule": None,
        "custom_dates": None,
        "venue_id": venue["id"] if venue else None,
        "venue": {"id": venue["id"], "name": venue["name"]} if venue else None,
    }

    if rule == "one-time":
        event["event_date"] = add_days(today_key, rng.randint(0, 45))
    elif rule == "custom":
        offsets = sorted(rng.sample(range(0, 60), k=rng.randint(2, 5)))
        event["recurrence_rule"] = "custom"
        event["custom_dates"] = [add_days(today_key, offset) for offset in offsets]
    else:
        anchor = add_days(today_key, rng.randint(-30, 0))
        event["recurrence_rule"] = rule
        event["event_date"] = anchor
        # Legacy weekly rows carry only the anchor date.
        if rule == "weekly" and rng.random() < 0.3:
            event["day_of_week"] = None
        elif rule in {"weekly", "biweekly"}:
            event["day_of_week"] = day_name_from_date_key(anchor)
        else:
            event["day_of_week"] = rng.choice(DAY_NAMES)
    return event

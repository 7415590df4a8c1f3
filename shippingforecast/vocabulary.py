from __future__ import annotations

import random
from typing import Sequence, TypeVar

T = TypeVar("T")

WIND_DIRECTIONS = (
    "Northerly",
    "North-easterly",
    "Easterly",
    "South-easterly",
    "Southerly",
    "South-westerly",
    "Westerly",
    "North-westerly",
    "Variable",
    "Cyclonic",
)

WIND_BEHAVIORS = (
    "Backing",
    "Veering",
    "Becoming variable",
    "Becoming cyclonic",
)

WIND_MODIFIERS = (
    "increasing",
    "decreasing",
    "backing",
    "veering",
    "becoming",
    "rising",
    "falling",
)

TIMING_PHRASES = (
    "later",
    "at first",
    "for a time",
    "soon",
    "by evening",
    "by midnight",
    "overnight",
)

# joins the two halves of a compound force ("5 to 6", "6 or 7")
FORCE_CONNECTORS = (
    "to",
    "or",
    "occasionally",
)

PRECIPITATION_MODIFIERS = (
    "Thundery",
    "Wintry",
    "Squally",
    "Occasionally",
    "Heavy",
    "Light",
)

PRECIPITATION_TYPES = (
    "showers",
    "rain",
    "snow",
)

ICING_SEVERITIES = (
    "Moderate",
    "Severe",
)

VISIBILITY = (
    "Excellent",
    "Very good",
    "Good",
    "Moderate",
    "Poor",
    "Very poor",
    "Fog",
    "Dense fog",
)

# General synopsis
PRESSURE_DESCRIPTIONS = (
    "High",
    "Medium",
    "Low",
)

RATE_OF_CHANGE = (
    "more slowly",
    "slowly",
    "quickly",
    "very rapidly",
)

PRESSURE_CHANGES = (
    "deepening",
    "clearing",
)

COMPASS_DIRECTIONS_SYNOPSIS = (
    "north",
    "northwest",
    "northeast",
    "east",
    "southeast",
    "south",
    "southwest",
    "west",
)


def pick(rng: random.Random, items: Sequence[T]) -> T:
    if not items:
        raise ValueError("pick() from an empty table")
    return items[int(rng.random() * len(items))]


def randint(rng: random.Random, lo: int, hi: int) -> int:
    """Inclusive on both ends."""
    return lo + int(rng.random() * (hi - lo + 1))

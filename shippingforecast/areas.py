from __future__ import annotations

import enum
import random
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence, TypeVar

T = TypeVar("T")

# Canonical broadcast order (north to south, then clockwise round the British Isles).
# Gale warnings are listed in this order, so keep it stable.
STANDARD_AREAS: tuple[str, ...] = (
    "Viking",
    "North Utsire",
    "South Utsire",
    "Forties",
    "Cromarty",
    "Forth",
    "Tyne",
    "Dogger",
    "Fisher",
    "German Bight",
    "Humber",
    "Thames",
    "Dover",
    "Wight",
    "Portland",
    "Plymouth",
    "Biscay",
    "Trafalgar",
    "FitzRoy",
    "Sole",
    "Lundy",
    "Fastnet",
    "Irish Sea",
    "Shannon",
    "Rockall",
    "Malin",
    "Hebrides",
    "Bailey",
    "Fair Isle",
    "Faeroes",
    "South-East Iceland",
)

PHANTOM_AREAS: tuple[str, ...] = (
    "The Void",
    "Silence",
    "Elder Bank",
    "Mirror Reach",
    "The Marrow",
    "Still Water",
    "Obsidian Deep",
)

DEFAULT_PHANTOM_PROBABILITY = 0.02

_WS_RE = re.compile(r"\s+")


class AreaKind(str, enum.Enum):
    STANDARD = "standard"
    PHANTOM = "phantom"


@dataclass(frozen=True)
class SeaArea:
    name: str
    kind: AreaKind
    id: str

    @property
    def is_phantom(self) -> bool:
        return self.kind is AreaKind.PHANTOM


def area_slug(name: str) -> str:
    return _WS_RE.sub("-", (name or "").strip().lower())


def create_sea_area(name: str, kind: AreaKind) -> SeaArea:
    return SeaArea(name=name, kind=AreaKind(kind), id=area_slug(name))


def shuffled(items: Sequence[T], rng: random.Random) -> List[T]:
    """
    Fisher-Yates shuffle into a new list (input is not touched).
    """
    out = list(items)
    for i in range(len(out) - 1, 0, -1):
        j = rng.randrange(i + 1)
        out[i], out[j] = out[j], out[i]
    return out


def geographic_index(name: str) -> int:
    """
    Position of an area in the canonical order; unknown/phantom names sort last.
    """
    try:
        return STANDARD_AREAS.index(name)
    except ValueError:
        return len(STANDARD_AREAS)


class AreaCycler:
    """
    Hands out sea areas one at a time.

    Standard areas come from a shuffled permutation so each is visited exactly
    once per lap. With probability ``phantom_probability`` a phantom area is
    returned instead; phantom draws never move the lap cursor.
    """

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        phantom_probability: float = DEFAULT_PHANTOM_PROBABILITY,
        standard: Sequence[str] = STANDARD_AREAS,
        phantoms: Sequence[str] = PHANTOM_AREAS,
    ) -> None:
        if not standard:
            raise ValueError("AreaCycler needs at least one standard area")
        if not 0.0 <= float(phantom_probability) <= 1.0:
            raise ValueError(f"phantom_probability out of range: {phantom_probability}")

        self.rng = rng or random.Random()
        self.phantom_probability = float(phantom_probability)
        self._standard = [create_sea_area(n, AreaKind.STANDARD) for n in standard]
        self._phantoms = [create_sea_area(n, AreaKind.PHANTOM) for n in phantoms]

        self._order: List[SeaArea] = shuffled(self._standard, self.rng)
        self._cursor = 0
        self.lap = 0

    @property
    def cursor(self) -> int:
        return self._cursor

    def next(self) -> SeaArea:
        if self._phantoms and self.rng.random() < self.phantom_probability:
            return self.rng.choice(self._phantoms)

        area = self._order[self._cursor]
        self._cursor += 1

        if self._cursor >= len(self._order):
            # lap finished; the boundary itself may repeat an area (last of N == first of N+1)
            self._order = shuffled(self._standard, self.rng)
            self._cursor = 0
            self.lap += 1

        return area

    def reset(self) -> None:
        self._order = shuffled(self._standard, self.rng)
        self._cursor = 0

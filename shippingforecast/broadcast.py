from __future__ import annotations

import datetime as dt
import logging
import random
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from . import vocabulary as v
from .areas import STANDARD_AREAS, geographic_index
from .generator import ReportGenerator
from .report import GALE_FORCE, WeatherReport
from .spoken import format_bbc_date, format_bbc_time

log = logging.getLogger("shippingforecast.broadcast")

# at or above this many gale areas the warning lists the quiet areas instead
INVERSE_GALE_THRESHOLD = 16


@dataclass(frozen=True)
class IntroductionVariant:
    id: str
    authority: str
    template: str
    weight: int
    is_surreal: bool = False


@dataclass(frozen=True)
class TimePeriodVariant:
    id: str
    template: str
    weight: int


_MET = "the Met Office"
_MET_MCA = "the Met Office on behalf of the Maritime and Coastguard Agency"
_STD = "And now the shipping forecast, issued by {authority} at {time} {date}"

INTRODUCTION_VARIANTS: Tuple[IntroductionVariant, ...] = (
    IntroductionVariant("std-001", _MET_MCA, _STD, 2),
    IntroductionVariant("std-002", _MET_MCA, "The shipping forecast, issued by {authority} at {time} {date}", 2),
    IntroductionVariant("std-003", "the Met Office for the Maritime and Coastguard Agency", _STD, 2),
    IntroductionVariant(
        "std-004", _MET,
        "And now the shipping forecast, issued by {authority} on behalf of the Maritime and Coastguard Agency at {time} {date}", 2,
    ),
    IntroductionVariant("std-005", _MET, "The shipping forecast for {date}, issued by {authority} at {time}", 2),
    IntroductionVariant("std-006", "the Meteorological Office on behalf of the Maritime and Coastguard Agency", _STD, 2),
    IntroductionVariant(
        "std-007", _MET,
        "And now the shipping forecast. Issued by {authority} on behalf of the Maritime and Coastguard Agency at {time} {date}", 2,
    ),
    IntroductionVariant("std-008", _MET_MCA, "The shipping forecast issued at {time} {date} by {authority}", 2),
    IntroductionVariant(
        "std-009", _MET,
        "And now the shipping forecast for mariners. Issued by {authority} on behalf of the Maritime and Coastguard Agency at {time} {date}", 2,
    ),
    IntroductionVariant("std-010", _MET_MCA, "And now, the shipping forecast. Issued by {authority} at {time} {date}", 2),
    IntroductionVariant("std-011", "the Met Office for Her Majesty's Coastguard", _STD, 2),
    IntroductionVariant(
        "std-012", "the Meteorological Office",
        "The shipping forecast for {date}. Issued by {authority} on behalf of the Maritime and Coastguard Agency at {time}", 2,
    ),
    IntroductionVariant("sur-001", "the Department of Quiet Waters", _STD, 1, True),
    IntroductionVariant("sur-002", "the Institute of Maritime Observation", _STD, 1, True),
    IntroductionVariant(
        "sur-003", "the Department of Quiet Waters",
        "And now the shipping forecast, issued by {authority} at a time that may have passed {date}", 1, True,
    ),
    IntroductionVariant(
        "sur-004", "the Coastal Monitoring Service",
        "And now the shipping forecast, issued by {authority} at {time} on a day known to the tides", 1, True,
    ),
    IntroductionVariant(
        "sur-005", "the Maritime Weather Bureau",
        "And now the shipping forecast, issued by {authority} at a time yet to be determined {date}", 1, True,
    ),
    IntroductionVariant("sur-006", "the Met Office under instruction from deeper waters", _STD, 1, True),
    IntroductionVariant(
        "sur-007", "those who watch the shipping lanes",
        "And now the shipping forecast, issued on behalf of {authority} at {time} {date}", 1, True,
    ),
    IntroductionVariant(
        "sur-008", "the Sea Council",
        "And now the shipping forecast, issued by {authority} at an hour known to the tides {date}", 1, True,
    ),
)

TIME_PERIOD_VARIANTS: Tuple[TimePeriodVariant, ...] = (
    TimePeriodVariant("tp-001", "And now the area forecasts for the next 24 hours", 3),
    TimePeriodVariant("tp-002", "The area forecasts for the next 24 hours", 3),
    TimePeriodVariant("tp-003", "And now the area forecasts for the next 48 hours", 3),
    TimePeriodVariant("tp-004", "Area forecasts issued for the next 6 hours", 3),
    TimePeriodVariant("tp-005", "And now the area forecasts for the 24-hour period beginning at 0600", 3),
    TimePeriodVariant("tp-006", "The area forecasts for the period covering the next 24 hours", 3),
    TimePeriodVariant("tp-007", "And now the area forecasts valid until 0600 tomorrow", 2),
    TimePeriodVariant("tp-008", "Area forecasts until midnight tonight", 2),
    TimePeriodVariant("tp-009", "And now the area forecasts for the period ending 1800 hours", 2),
    TimePeriodVariant("tp-010", "The area forecasts valid until 0000 UTC Wednesday", 2),
    TimePeriodVariant("tp-011", "And now the area forecasts valid through the overnight period", 1),
    TimePeriodVariant("tp-012", "Area forecasts for the remainder of today and tonight", 1),
    TimePeriodVariant("tp-013", "And now the area forecasts through the next two tidal periods", 1),
    TimePeriodVariant("tp-014", "Area forecasts for the next watch period", 1),
    TimePeriodVariant("tp-015", "And now the area forecasts until the next scheduled update", 1),
)

# millibar swing per rate-of-change phrase (inclusive ranges)
_RATE_MAGNITUDE = {
    "more slowly": (3, 5),
    "slowly": (4, 6),
    "quickly": (8, 10),
    "very rapidly": (10, 12),
}


@dataclass(frozen=True)
class Introduction:
    variant_id: str
    authority: str
    time: str
    date: str
    text: str
    is_surreal: bool


@dataclass(frozen=True)
class GaleWarnings:
    affected_areas: Tuple[str, ...]
    listed_areas: Tuple[str, ...]
    format_type: str  # "standard" | "inverse"
    text: str


@dataclass(frozen=True)
class GeneralSynopsis:
    pressure_description: str
    current_direction: str
    current_area: str
    current_pressure: int
    change_type: Optional[str]
    change_rate: Optional[str]
    expected_direction: str
    expected_area: str
    expected_pressure: int
    expected_time: str
    text: str


@dataclass(frozen=True)
class TimePeriod:
    variant_id: str
    validity_hours: int
    text: str


@dataclass(frozen=True)
class Broadcast:
    broadcast_id: str
    created_at: dt.datetime
    introduction: Introduction
    gale_warnings: Optional[GaleWarnings]
    general_synopsis: GeneralSynopsis
    time_period: TimePeriod
    area_forecasts: Tuple[WeatherReport, ...]

    @property
    def text(self) -> str:
        parts = [self.introduction.text + "."]
        if self.gale_warnings:
            parts.append(self.gale_warnings.text + ".")
        parts.append(self.general_synopsis.text)
        parts.append(self.time_period.text + ".")
        parts.extend(r.text for r in self.area_forecasts)
        return "\n\n".join(parts)


def select_weighted(rng: random.Random, variants: Sequence):
    total = sum(int(x.weight) for x in variants)
    if total <= 0:
        raise ValueError("no selectable variants")
    r = rng.random() * total
    for x in variants:
        r -= int(x.weight)
        if r < 0:
            return x
    return variants[-1]


def order_geographically(names: Sequence[str]) -> List[str]:
    return sorted(names, key=geographic_index)


def build_gale_warnings(reports: Sequence[WeatherReport]) -> Optional[GaleWarnings]:
    gale = order_geographically([r.area.name for r in reports if r.wind.max_force >= GALE_FORCE])
    if not gale:
        return None

    if len(gale) >= INVERSE_GALE_THRESHOLD:
        quiet = [n for n in order_geographically([r.area.name for r in reports]) if n not in gale]
        return GaleWarnings(
            affected_areas=tuple(gale),
            listed_areas=tuple(quiet),
            format_type="inverse",
            text="Gale warnings are in effect in all areas except: " + ", ".join(quiet),
        )

    return GaleWarnings(
        affected_areas=tuple(gale),
        listed_areas=tuple(gale),
        format_type="standard",
        text="Gale warnings are in effect for: " + ", ".join(gale),
    )


class BroadcastGenerator:
    """
    Wraps a run of area forecasts in the full broadcast structure:
    introduction, gale warnings (only when there are gales), general synopsis,
    time period, then the areas themselves.
    """

    def __init__(
        self,
        generator: ReportGenerator,
        rng: Optional[random.Random] = None,
        now: Optional[Callable[[], dt.datetime]] = None,
    ) -> None:
        self.generator = generator
        self.rng = rng or generator.rng
        self.now = now or generator.now

    def generate_broadcast(self, area_count: int = len(STANDARD_AREAS)) -> Broadcast:
        if area_count < 1:
            raise ValueError(f"area_count must be positive, got {area_count}")

        created = self.now()
        reports = tuple(self.generator.generate() for _ in range(area_count))

        b = Broadcast(
            broadcast_id=self._broadcast_id(created),
            created_at=created,
            introduction=self.introduction(created),
            gale_warnings=build_gale_warnings(reports),
            general_synopsis=self.general_synopsis(created),
            time_period=self.time_period(),
            area_forecasts=reports,
        )
        log.info(
            "Generated broadcast %s (areas=%d gales=%d)",
            b.broadcast_id,
            len(reports),
            len(b.gale_warnings.affected_areas) if b.gale_warnings else 0,
        )
        return b

    def preamble(self) -> str:
        """
        Spoken lead-in for a continuous stream: introduction, synopsis and
        time period. Gale warnings are left out since the areas are not
        generated yet.
        """
        created = self.now()
        return " ".join(
            [
                self.introduction(created).text + ".",
                self.general_synopsis(created).text,
                self.time_period().text + ".",
            ]
        )

    def introduction(self, when: dt.datetime) -> Introduction:
        variant: IntroductionVariant = select_weighted(self.rng, INTRODUCTION_VARIANTS)
        time_s = format_bbc_time(when)
        date_s = format_bbc_date(when)
        text = variant.template.format(authority=variant.authority, time=time_s, date=date_s)
        return Introduction(
            variant_id=variant.id,
            authority=variant.authority,
            time=time_s,
            date=date_s,
            text=text,
            is_surreal=variant.is_surreal,
        )

    def time_period(self) -> TimePeriod:
        variant: TimePeriodVariant = select_weighted(self.rng, TIME_PERIOD_VARIANTS)
        return TimePeriod(variant_id=variant.id, validity_hours=24, text=variant.template)

    def general_synopsis(self, when: dt.datetime) -> GeneralSynopsis:
        rng = self.rng
        pressure_desc = v.pick(rng, v.PRESSURE_DESCRIPTIONS)
        cur_dir = v.pick(rng, v.COMPASS_DIRECTIONS_SYNOPSIS)
        cur_area = v.pick(rng, STANDARD_AREAS)
        cur_pressure = v.randint(rng, 900, 1099)

        change_type = None
        change_rate = None
        delta = 0
        if rng.random() < 0.5:
            change_type = v.pick(rng, v.PRESSURE_CHANGES)
            change_rate = v.pick(rng, v.RATE_OF_CHANGE)
            lo, hi = _RATE_MAGNITUDE.get(change_rate, (5, 5))
            delta = v.randint(rng, lo, hi)
            if change_type == "deepening":
                delta = -delta

        exp_dir = v.pick(rng, v.COMPASS_DIRECTIONS_SYNOPSIS)
        exp_area = v.pick(rng, STANDARD_AREAS)
        exp_pressure = cur_pressure + delta
        exp_time = self._future_time(when, v.randint(rng, 3, 24))

        text = f"The general synopsis: {pressure_desc} {cur_dir} of {cur_area} {cur_pressure}"
        if change_type and change_rate:
            text += f", {change_type} {change_rate},"
        text += f" expected {exp_dir} of {exp_area} {exp_pressure} by {exp_time}."

        return GeneralSynopsis(
            pressure_description=pressure_desc,
            current_direction=cur_dir,
            current_area=cur_area,
            current_pressure=cur_pressure,
            change_type=change_type,
            change_rate=change_rate,
            expected_direction=exp_dir,
            expected_area=exp_area,
            expected_pressure=exp_pressure,
            expected_time=exp_time,
            text=text,
        )

    @staticmethod
    def _future_time(when: dt.datetime, hours_ahead: int) -> str:
        future = when + dt.timedelta(hours=hours_ahead)
        s = future.strftime("%H:%M")
        if future.date() != when.date():
            return f"{s} tomorrow"
        return s

    def _broadcast_id(self, created: dt.datetime) -> str:
        combined = int(created.timestamp() * 1000) ^ self.rng.getrandbits(32)
        return f"broadcast-{combined & 0xFFFFFFFF:08x}"

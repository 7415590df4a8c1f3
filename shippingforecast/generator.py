from __future__ import annotations

import datetime as dt
import logging
import random
from typing import Callable, Optional

from . import vocabulary as v
from .areas import AreaCycler
from .report import Icing, Precipitation, WeatherReport, WindCondition

log = logging.getLogger("shippingforecast.generator")

COMPOUND_FORCE_PROBABILITY = 0.15
BEHAVIOR_PROBABILITY = 0.2
MODIFIER_PROBABILITY = 0.15
TIMING_PROBABILITY = 0.12
ICING_PROBABILITY = 0.1
VISIBILITY_CHANGE_PROBABILITY = 0.1


def _utcnow() -> dt.datetime:
    return dt.datetime.now(tz=dt.timezone.utc)


class ReportGenerator:
    def __init__(
        self,
        cycler: Optional[AreaCycler] = None,
        rng: Optional[random.Random] = None,
        now: Callable[[], dt.datetime] = _utcnow,
    ) -> None:
        self.rng = rng or random.Random()
        self.cycler = cycler or AreaCycler(rng=self.rng)
        self.now = now

    def generate(self) -> WeatherReport:
        area = self.cycler.next()
        visibility, becoming = self._visibility()

        report = WeatherReport(
            area=area,
            wind=self._wind(),
            precipitation=self._precipitation(),
            icing=self._icing(),
            visibility=visibility,
            visibility_becoming=becoming,
            timestamp=self.now().isoformat(),
        )
        log.debug("Generated %s report: %s", area.kind.value, report.text)
        return report

    def _chance(self, p: float) -> bool:
        return self.rng.random() < p

    def _wind(self) -> WindCondition:
        rng = self.rng
        direction = v.pick(rng, v.WIND_DIRECTIONS)

        connector = None
        if self._chance(COMPOUND_FORCE_PROBABILITY):
            base = v.randint(rng, 4, 8)
            force = (base, base + v.randint(rng, 1, 2))
            connector = v.pick(rng, v.FORCE_CONNECTORS)
        else:
            force = v.randint(rng, 4, 12)

        # independent draws, any combination may appear
        behavior = v.pick(rng, v.WIND_BEHAVIORS) if self._chance(BEHAVIOR_PROBABILITY) else None
        modifier = v.pick(rng, v.WIND_MODIFIERS) if self._chance(MODIFIER_PROBABILITY) else None
        timing = v.pick(rng, v.TIMING_PHRASES) if self._chance(TIMING_PROBABILITY) else None

        return WindCondition(
            direction=direction,
            force=force,
            connector=connector,
            behavior=behavior,
            modifier=modifier,
            timing=timing,
        )

    def _precipitation(self) -> Precipitation:
        return Precipitation(
            modifier=v.pick(self.rng, v.PRECIPITATION_MODIFIERS),
            type=v.pick(self.rng, v.PRECIPITATION_TYPES),
        )

    def _icing(self) -> Optional[Icing]:
        if not self._chance(ICING_PROBABILITY):
            return None
        return Icing(severity=v.pick(self.rng, v.ICING_SEVERITIES))

    def _visibility(self) -> tuple[str, Optional[str]]:
        initial = v.pick(self.rng, v.VISIBILITY)
        if not self._chance(VISIBILITY_CHANGE_PROBABILITY):
            return initial, None
        others = [x for x in v.VISIBILITY if x != initial]
        return initial, v.pick(self.rng, others).lower()

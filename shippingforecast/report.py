from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple, Union

from .areas import SeaArea

Force = Union[int, Tuple[int, int]]

MIN_FORCE = 4
MAX_FORCE = 12
GALE_FORCE = 8

_BEAUFORT_NAMES = {
    8: "gale 8",
    9: "severe gale 9",
    10: "storm 10",
    11: "violent storm 11",
    12: "hurricane force 12",
}


class ReportValidationError(ValueError):
    pass


def beaufort(force: int) -> str:
    """
    Spoken form of a single Beaufort force: names from gale upwards, bare number below.
    """
    f = int(force)
    if f < MIN_FORCE or f > MAX_FORCE:
        raise ReportValidationError(f"force out of range: {force}")
    return _BEAUFORT_NAMES.get(f, str(f))


def _check_force(value: object) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ReportValidationError(f"force must be an int, got {value!r}")
    if value < MIN_FORCE or value > MAX_FORCE:
        raise ReportValidationError(f"force out of range: {value}")


@dataclass(frozen=True)
class WindCondition:
    direction: str
    force: Force
    connector: Optional[str] = None
    behavior: Optional[str] = None
    modifier: Optional[str] = None
    timing: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.direction, str) or not self.direction.strip():
            raise ReportValidationError("wind direction is required")

        if isinstance(self.force, tuple):
            if len(self.force) != 2:
                raise ReportValidationError(f"compound force needs two values, got {self.force!r}")
            lo, hi = self.force
            _check_force(lo)
            _check_force(hi)
            if hi < lo:
                raise ReportValidationError(f"compound force must not decrease: {self.force!r}")
            if not self.connector:
                raise ReportValidationError("compound force needs a connector")
        else:
            _check_force(self.force)

    @property
    def is_compound(self) -> bool:
        return isinstance(self.force, tuple)

    @property
    def max_force(self) -> int:
        return max(self.force) if isinstance(self.force, tuple) else int(self.force)

    @property
    def force_text(self) -> str:
        if isinstance(self.force, tuple):
            lo, hi = self.force
            return f"{beaufort(lo)} {self.connector} {beaufort(hi)}"
        return beaufort(self.force)


@dataclass(frozen=True)
class Precipitation:
    modifier: str
    type: str

    @property
    def text(self) -> str:
        return f"{self.modifier} {self.type}"


@dataclass(frozen=True)
class Icing:
    severity: str

    @property
    def text(self) -> str:
        return f"{self.severity} icing"


@dataclass(frozen=True)
class WeatherReport:
    """
    One area forecast. All randomness is resolved before construction, so
    ``text`` is a pure function of the fields.
    """
    area: SeaArea
    wind: WindCondition
    precipitation: Precipitation
    visibility: str
    icing: Optional[Icing] = None
    visibility_becoming: Optional[str] = None
    timestamp: str = ""

    def __post_init__(self) -> None:
        if not isinstance(self.area, SeaArea):
            raise ReportValidationError(f"area is required, got {self.area!r}")
        if not isinstance(self.wind, WindCondition):
            raise ReportValidationError(f"wind is required, got {self.wind!r}")
        if not isinstance(self.precipitation, Precipitation):
            raise ReportValidationError(f"precipitation is required, got {self.precipitation!r}")
        if not isinstance(self.visibility, str) or not self.visibility.strip():
            raise ReportValidationError("visibility is required")
        if self.icing is not None and not isinstance(self.icing, Icing):
            raise ReportValidationError(f"icing must be Icing or None, got {self.icing!r}")

    @property
    def is_phantom(self) -> bool:
        return self.area.is_phantom

    @property
    def wind_text(self) -> str:
        w = self.wind
        s = f"{w.direction} {w.force_text}"
        if w.behavior:
            s += f", {w.behavior.lower()}"
        if w.modifier:
            s += f", {w.modifier}"
        if w.timing:
            s += f" {w.timing}"
        return s

    @property
    def visibility_text(self) -> str:
        if self.visibility_becoming:
            return f"{self.visibility}, becoming {self.visibility_becoming.lower()}"
        return self.visibility

    @property
    def text(self) -> str:
        return render_text(self)


def render_text(report: WeatherReport) -> str:
    """
    "Area. Wind[, behavior][, modifier][ timing]. Precipitation. Visibility[, becoming X]. [Icing.]"
    """
    parts = [
        report.area.name,
        report.wind_text,
        report.precipitation.text,
        report.visibility_text,
    ]
    if report.icing is not None:
        parts.append(report.icing.text)
    return ". ".join(parts) + "."

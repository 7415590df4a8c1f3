from __future__ import annotations

import random
import time
from dataclasses import dataclass, field
from typing import Dict, Optional

from .broadcast import Broadcast
from .report import WeatherReport

_XML_ESCAPES = (
    ("&", "&amp;"),
    ("<", "&lt;"),
    (">", "&gt;"),
    ('"', "&quot;"),
    ("'", "&apos;"),
)

_B36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def escape_xml(text: object) -> str:
    if text is None:
        return ""
    s = text if isinstance(text, str) else str(text)
    # & first so we don't double-escape the entities we add
    for raw, ent in _XML_ESCAPES:
        s = s.replace(raw, ent)
    return s


def _base36(n: int) -> str:
    if n <= 0:
        return "0"
    out = ""
    while n:
        n, r = divmod(n, 36)
        out = _B36[r] + out
    return out


@dataclass(frozen=True)
class PhantomVoice:
    rate: str = "85%"
    # pitch sags through the body of the report and only half recovers
    pitch_start: str = "-4%"
    pitch_middle: str = "-12%"
    pitch_end: str = "-6%"


@dataclass(frozen=True)
class ProsodyConfig:
    standard_rate: str = "100%"
    warning_rate: str = "80%"
    warning_pitch: str = "-10%"
    area_emphasis: str = "strong"
    after_area: str = "800ms"
    after_wind_direction: str = "200ms"
    after_wind_force: str = "600ms"
    after_precipitation: str = "600ms"
    after_visibility: str = "600ms"
    after_icing: str = "500ms"
    end_of_report: str = "1500ms"
    after_introduction: str = "1500ms"
    after_gale_warnings: str = "1000ms"
    after_synopsis: str = "1200ms"
    after_time_period: str = "800ms"
    phantom: PhantomVoice = field(default_factory=PhantomVoice)
    # phonetic respellings; neural voices handle these better than IPA phoneme tags
    respellings: Dict[str, str] = field(
        default_factory=lambda: {
            "Utsire": "Uutt-seerra",
            "Cromarty": "KROM-ar-tee",
            "Faeroes": "FAIR-ohs",
            "FitzRoy": "fits-ROY",
            "Hebrides": "HEB-ri-deez",
            "Malin": "MAL-in",
        }
    )


DEFAULT_PROSODY = ProsodyConfig()


@dataclass(frozen=True)
class SSMLTemplate:
    ssml: str
    report_id: str
    area_name: str
    is_phantom: bool
    character_count: int
    created_at_ms: int


def _brk(t: str) -> str:
    return f'<break time="{t}"/>'


class SSMLBuilder:
    def __init__(self, prosody: ProsodyConfig = DEFAULT_PROSODY, rng: Optional[random.Random] = None) -> None:
        self.p = prosody
        self.rng = rng or random.Random()

    def build(self, report: WeatherReport) -> SSMLTemplate:
        if not isinstance(report, WeatherReport):
            raise ValueError("Invalid report: a WeatherReport with area and wind is required")

        ssml = f"<speak>{self._report_body(report)}</speak>"
        return SSMLTemplate(
            ssml=ssml,
            report_id=self._report_id(report.area.name),
            area_name=report.area.name,
            is_phantom=report.is_phantom,
            character_count=len(ssml),
            created_at_ms=int(time.time() * 1000),
        )

    def build_warning(self, text: str) -> str:
        p = self.p
        return (
            f'<speak><prosody rate="{p.warning_rate}" pitch="{p.warning_pitch}">'
            f"{escape_xml(text)}{_brk(p.end_of_report)}</prosody></speak>"
        )

    def build_segment(self, text: str, pause: Optional[str] = None) -> str:
        p = self.p
        return (
            f'<speak><prosody rate="{p.standard_rate}">'
            f"{escape_xml(text)}{_brk(pause or p.after_introduction)}</prosody></speak>"
        )

    def build_broadcast(self, broadcast: Broadcast) -> str:
        p = self.p
        head = escape_xml(broadcast.introduction.text) + _brk(p.after_introduction)
        if broadcast.gale_warnings:
            head += escape_xml(broadcast.gale_warnings.text) + _brk(p.after_gale_warnings)
        head += escape_xml(broadcast.general_synopsis.text) + _brk(p.after_synopsis)
        head += escape_xml(broadcast.time_period.text) + _brk(p.after_time_period)

        body = "".join(self._report_body(r) for r in broadcast.area_forecasts)
        return f'<speak><prosody rate="{p.standard_rate}">{head}</prosody>{body}</speak>'

    # -- report pieces ---------------------------------------------------

    def _report_body(self, r: WeatherReport) -> str:
        p = self.p
        area = self._area(r.area.name) + _brk(p.after_area)
        wind = self._wind(r)
        precip = escape_xml(r.precipitation.text) + _brk(p.after_precipitation)
        vis = escape_xml(r.visibility_text) + _brk(p.after_visibility)
        icing = ""
        if r.icing is not None:
            icing = f'<emphasis level="strong">{escape_xml(r.icing.text)}</emphasis>{_brk(p.after_icing)}'
        end = _brk(p.end_of_report)

        if not r.is_phantom:
            return f'<prosody rate="{p.standard_rate}">{area}{wind}{precip}{vis}{icing}{end}</prosody>'

        ph = p.phantom
        return (
            f'<prosody rate="{ph.rate}">'
            f'<prosody pitch="{ph.pitch_start}">{area}</prosody>'
            f'<prosody pitch="{ph.pitch_middle}">{wind}{precip}</prosody>'
            f'<prosody pitch="{ph.pitch_end}">{vis}{icing}</prosody>'
            f"{end}</prosody>"
        )

    def _area(self, name: str) -> str:
        spoken = name
        for word, respelling in self.p.respellings.items():
            if word in spoken:
                spoken = spoken.replace(word, respelling)
        return f'<emphasis level="{self.p.area_emphasis}">{escape_xml(spoken)}</emphasis>'

    def _wind(self, r: WeatherReport) -> str:
        p = self.p
        w = r.wind
        s = escape_xml(w.direction) + _brk(p.after_wind_direction)
        s += " " + escape_xml(w.force_text) + _brk(p.after_wind_force)
        for extra in (w.behavior.lower() if w.behavior else None, w.modifier, w.timing):
            if extra:
                s += " " + escape_xml(extra) + _brk(p.after_wind_force)
        return s

    def _report_id(self, area_name: str) -> str:
        prefix = (area_name or "unk")[:3].lower()
        stamp = _base36(int(time.time() * 1000))
        tail = _base36(self.rng.getrandbits(36))[:7]
        return f"report-{prefix}-{stamp}-{tail}"

import datetime as dt
import random
import re

from conftest import ScriptedRandom, make_report
from shippingforecast.areas import STANDARD_AREAS, AreaCycler
from shippingforecast.broadcast import (
    INTRODUCTION_VARIANTS,
    TIME_PERIOD_VARIANTS,
    BroadcastGenerator,
    build_gale_warnings,
    select_weighted,
)
from shippingforecast.generator import ReportGenerator

NOW = dt.datetime(2024, 3, 21, 5, 30, tzinfo=dt.timezone.utc)


def _broadcasts(seed=0):
    rng = random.Random(seed)
    gen = ReportGenerator(cycler=AreaCycler(rng=rng, phantom_probability=0.0), rng=rng, now=lambda: NOW)
    return BroadcastGenerator(gen)


class TestGaleWarnings:
    def test_no_gales_no_warning(self):
        assert build_gale_warnings([make_report("Dogger", 5), make_report("Viking", 7)]) is None

    def test_standard_form_in_geographic_order(self):
        reports = [make_report("Thames", 9), make_report("Viking", 8), make_report("Fisher", 4)]
        g = build_gale_warnings(reports)
        assert g.format_type == "standard"
        assert g.affected_areas == ("Viking", "Thames")
        assert g.text == "Gale warnings are in effect for: Viking, Thames"

    def test_compound_force_counts_by_its_top(self):
        g = build_gale_warnings([make_report("Sole", (7, 8))])
        assert g.affected_areas == ("Sole",)

    def test_inverse_form_from_sixteen_areas(self):
        """With 16 or more gale areas the quiet ones are listed instead"""
        names = list(STANDARD_AREAS)
        reports = [make_report(n, 9 if i < 16 else 5) for i, n in enumerate(names)]
        g = build_gale_warnings(reports)
        assert g.format_type == "inverse"
        assert len(g.affected_areas) == 16
        assert g.listed_areas == tuple(names[16:])
        assert g.text.startswith("Gale warnings are in effect in all areas except: ")

    def test_fifteen_areas_is_still_standard(self):
        reports = [make_report(n, 9 if i < 15 else 5) for i, n in enumerate(STANDARD_AREAS)]
        assert build_gale_warnings(reports).format_type == "standard"


class TestWeightedSelection:
    def test_extremes(self):
        assert select_weighted(ScriptedRandom([0.0]), INTRODUCTION_VARIANTS) is INTRODUCTION_VARIANTS[0]
        assert select_weighted(ScriptedRandom([0.999999]), TIME_PERIOD_VARIANTS) is TIME_PERIOD_VARIANTS[-1]

    def test_variant_tables(self):
        standard = [x for x in INTRODUCTION_VARIANTS if not x.is_surreal]
        surreal = [x for x in INTRODUCTION_VARIANTS if x.is_surreal]
        assert len(standard) == 12 and all(x.weight == 2 for x in standard)
        assert len(surreal) == 8 and all(x.weight == 1 for x in surreal)
        assert len(TIME_PERIOD_VARIANTS) == 15


class TestBroadcastGenerator:
    def test_full_broadcast(self):
        b = _broadcasts(seed=4).generate_broadcast()
        assert len(b.area_forecasts) == 31
        assert re.fullmatch(r"broadcast-[0-9a-f]{8}", b.broadcast_id)
        assert b.introduction.time == "zero five thirty"
        assert b.general_synopsis.text.startswith("The general synopsis: ")
        text = b.text
        assert text.index(b.introduction.text) < text.index(b.general_synopsis.text)
        assert text.index(b.time_period.text) < text.index(b.area_forecasts[0].text)

    def test_area_count_is_honoured(self):
        b = _broadcasts(seed=1).generate_broadcast(area_count=5)
        assert len(b.area_forecasts) == 5

    def test_synopsis_numbers(self):
        """Pressure 900-1099; deepening falls, clearing rises, by the rate's band"""
        bands = {"more slowly": (3, 5), "slowly": (4, 6), "quickly": (8, 10), "very rapidly": (10, 12)}
        gen = _broadcasts(seed=8)
        seen = set()
        for _ in range(400):
            s = gen.general_synopsis(NOW)
            assert 900 <= s.current_pressure <= 1099
            delta = s.expected_pressure - s.current_pressure
            if s.change_type is None:
                assert delta == 0
                continue
            seen.add(s.change_type)
            lo, hi = bands[s.change_rate]
            if s.change_type == "deepening":
                assert -hi <= delta <= -lo
            else:
                assert lo <= delta <= hi
        assert seen == {"deepening", "clearing"}

    def test_future_time_rolls_into_tomorrow(self):
        late = dt.datetime(2024, 3, 21, 22, 0, tzinfo=dt.timezone.utc)
        assert BroadcastGenerator._future_time(late, 3) == "01:00 tomorrow"
        assert BroadcastGenerator._future_time(NOW, 3) == "08:30"

    def test_preamble_has_no_gale_warnings(self):
        text = _broadcasts(seed=2).preamble()
        assert "The general synopsis" in text
        assert "Gale warnings" not in text

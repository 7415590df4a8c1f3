import datetime as dt

import pytest

from shippingforecast.spoken import format_bbc_date, format_bbc_time, number_to_words, ordinal_day

UTC = dt.timezone.utc


class TestSpokenTime:
    @pytest.mark.parametrize(
        "hour,minute,expected",
        [
            (5, 30, "zero five thirty"),
            (14, 0, "fourteen hundred"),
            (0, 0, "zero zero hundred"),
            (9, 5, "zero nine zero five"),
            (23, 45, "twenty-three forty-five"),
            (0, 48, "zero zero forty-eight"),
        ],
    )
    def test_broadcast_time(self, hour, minute, expected):
        assert format_bbc_time(dt.datetime(2024, 1, 1, hour, minute, tzinfo=UTC)) == expected

    def test_time_is_spoken_in_utc(self):
        local = dt.datetime(2024, 3, 21, 1, 30, tzinfo=dt.timezone(dt.timedelta(hours=2)))
        assert format_bbc_time(local) == "twenty-three thirty"

    def test_naive_times_are_taken_as_utc(self):
        assert format_bbc_time(dt.datetime(2024, 1, 1, 17, 54)) == "seventeen fifty-four"


class TestSpokenDate:
    def test_broadcast_date(self):
        assert format_bbc_date(dt.datetime(2021, 2, 2, tzinfo=UTC)) == "Tuesday the second of February"
        assert format_bbc_date(dt.datetime(2024, 3, 21, tzinfo=UTC)) == "Thursday the twenty-first of March"

    def test_with_on_prefix(self):
        assert format_bbc_date(dt.datetime(2024, 3, 30, tzinfo=UTC), include_on=True) == (
            "on Saturday the thirtieth of March"
        )

    def test_number_helpers(self):
        assert number_to_words(0) == "zero"
        assert number_to_words(40) == "forty"
        assert ordinal_day(1) == "first"
        assert ordinal_day(22) == "twenty-second"
        with pytest.raises(ValueError):
            number_to_words(60)
        with pytest.raises(ValueError):
            ordinal_day(32)

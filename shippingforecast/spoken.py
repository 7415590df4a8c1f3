from __future__ import annotations

import datetime as dt

_ONES = (
    "zero", "one", "two", "three", "four", "five", "six", "seven", "eight", "nine",
    "ten", "eleven", "twelve", "thirteen", "fourteen", "fifteen", "sixteen",
    "seventeen", "eighteen", "nineteen",
)
_TENS = ("", "", "twenty", "thirty", "forty", "fifty")

_ORDINAL_ONES = (
    "", "first", "second", "third", "fourth", "fifth", "sixth", "seventh", "eighth",
    "ninth", "tenth", "eleventh", "twelfth", "thirteenth", "fourteenth", "fifteenth",
    "sixteenth", "seventeenth", "eighteenth", "nineteenth",
)
_ORDINAL_TENS = {20: "twentieth", 30: "thirtieth"}

_DAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
_MONTHS = (
    "January", "February", "March", "April", "May", "June", "July",
    "August", "September", "October", "November", "December",
)


def number_to_words(n: int) -> str:
    """0..59 as spoken words ("twenty-one")."""
    if n < 0 or n > 59:
        raise ValueError(f"number_to_words only covers 0-59, got {n}")
    if n < 20:
        return _ONES[n]
    tens, ones = divmod(n, 10)
    if ones == 0:
        return _TENS[tens]
    return f"{_TENS[tens]}-{_ONES[ones]}"


def ordinal_day(day: int) -> str:
    if day < 1 or day > 31:
        raise ValueError(f"day of month out of range: {day}")
    if day < 20:
        return _ORDINAL_ONES[day]
    if day in _ORDINAL_TENS:
        return _ORDINAL_TENS[day]
    tens, ones = divmod(day, 10)
    return f"{_TENS[tens]}-{_ORDINAL_ONES[ones]}"


def _utc(when: dt.datetime) -> dt.datetime:
    if when.tzinfo is None:
        return when.replace(tzinfo=dt.timezone.utc)
    return when.astimezone(dt.timezone.utc)


def format_bbc_time(when: dt.datetime) -> str:
    """
    Broadcast style 24h time in UTC:
      05:30 -> "zero five thirty", 14:00 -> "fourteen hundred", 00:00 -> "zero zero hundred"
    """
    t = _utc(when)
    if t.hour == 0:
        hours = "zero zero"
    elif t.hour < 10:
        hours = f"zero {number_to_words(t.hour)}"
    else:
        hours = number_to_words(t.hour)

    if t.minute == 0:
        minutes = "hundred"
    elif t.minute < 10:
        minutes = f"zero {number_to_words(t.minute)}"
    else:
        minutes = number_to_words(t.minute)

    return f"{hours} {minutes}"


def format_bbc_date(when: dt.datetime, include_on: bool = False) -> str:
    t = _utc(when)
    s = f"{_DAYS[t.weekday()]} the {ordinal_day(t.day)} of {_MONTHS[t.month - 1]}"
    return f"on {s}" if include_on else s

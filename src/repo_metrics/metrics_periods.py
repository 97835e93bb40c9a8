from __future__ import annotations

import datetime as dt
from typing import Iterator


def parse_day(value: str) -> dt.date:
    s = (value or "").strip()
    if len(s) != 10 or s[4] != "-" or s[7] != "-":
        raise ValueError(f"Invalid date: {value!r} (expected YYYY-MM-DD)")
    try:
        return dt.date.fromisoformat(s)
    except ValueError as e:
        raise ValueError(f"Invalid date: {value!r} (expected YYYY-MM-DD)") from e


def end_of_day(day: dt.date) -> dt.datetime:
    # Naive: git reads a zone-less --before in local time.
    return dt.datetime(day.year, day.month, day.day, 23, 59, 59)


def iter_days(start: dt.date, end: dt.date) -> Iterator[dt.date]:
    """Yield every calendar day from `start` through `end`, both inclusive."""
    cur = start
    while cur <= end:
        yield cur
        cur = cur + dt.timedelta(days=1)

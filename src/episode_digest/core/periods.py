"""
Weekly period windows
"""
import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import List

_ISO_DATE = re.compile(r"^(\d{4}-\d{2}-\d{2})")


@dataclass(frozen=True)
class PeriodWindow:
    start: date
    end: date
    prior_start: date
    prior_end: date


def parse_date(value: str) -> date:
    """Parse YYYY-MM-DD, also accepting a full ISO timestamp."""
    match = _ISO_DATE.match(value.strip())
    if not match:
        raise ValueError(f"Invalid date: {value!r}. Expected YYYY-MM-DD")
    return date.fromisoformat(match.group(1))


def week_windows(start: date, end: date) -> List[PeriodWindow]:
    """
    Sunday-to-Saturday windows covering [start, end], each paired with
    the seven days immediately before it.
    """
    if start > end:
        raise ValueError("Start date must be on or before end date")

    # date.weekday(): Monday == 0, Sunday == 6
    first_sunday = start - timedelta(days=(start.weekday() + 1) % 7)
    last_saturday = end + timedelta(days=(5 - end.weekday()) % 7)

    windows: List[PeriodWindow] = []
    current = first_sunday
    while current <= last_saturday:
        prior_start = current - timedelta(days=7)
        windows.append(
            PeriodWindow(
                start=current,
                end=current + timedelta(days=6),
                prior_start=prior_start,
                prior_end=prior_start + timedelta(days=6),
            )
        )
        current += timedelta(days=7)

    return windows

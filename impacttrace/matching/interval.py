"""Calendar-date intervals: a single day or an inclusive [start, end] range.

All arithmetic is on datetime.date values (naive calendar days), never on
instants, so timezone offsets cannot shift a day across a boundary.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date


class IntervalValidationError(ValueError):
    """Raised when date fields violate the single-date XOR date-range invariant."""

    pass


@dataclass(frozen=True)
class SingleDay:
    """One calendar day."""

    day: date

    @property
    def start(self) -> date:
        return self.day

    @property
    def end(self) -> date:
        return self.day


@dataclass(frozen=True)
class DateRange:
    """Inclusive range of calendar days; start <= end."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise IntervalValidationError(
                f"Date range start {self.start.isoformat()} is after end {self.end.isoformat()}"
            )


Interval = SingleDay | DateRange


def overlaps(a: Interval, b: Interval) -> bool:
    """True when a and b share at least one day (boundaries inclusive)."""
    return a.start <= b.end and b.start <= a.end


def contains_day(interval: Interval, day: date) -> bool:
    """True when day falls within interval."""
    return interval.start <= day <= interval.end


def inclusive_day_count(interval: Interval) -> int:
    """Number of days in interval; a single day counts as 1."""
    return (interval.end - interval.start).days + 1


def overlap_window(a: Interval, b: Interval) -> Interval | None:
    """Intersection of a and b, or None when they do not overlap."""
    if not overlaps(a, b):
        return None
    start = max(a.start, b.start)
    end = min(a.end, b.end)
    if start == end:
        return SingleDay(start)
    return DateRange(start, end)


def interval_from_fields(
    date_represented: date | None,
    date_range_start: date | None = None,
    date_range_end: date | None = None,
) -> Interval:
    """Build an Interval from the persisted column triple.

    A range needs both bounds. date_represented may accompany a range only as
    the legacy mirror of date_range_start; any other combination is rejected.
    """
    if date_range_start is not None or date_range_end is not None:
        if date_range_start is None or date_range_end is None:
            raise IntervalValidationError("Both start and end dates are required for date ranges")
        if date_represented is not None and date_represented != date_range_start:
            raise IntervalValidationError(
                "date_represented must be empty or equal date_range_start when a range is set"
            )
        return DateRange(date_range_start, date_range_end)
    if date_represented is None:
        raise IntervalValidationError("A date or a date range is required")
    return SingleDay(date_represented)


def interval_to_fields(interval: Interval) -> dict[str, date | None]:
    """Column values for interval; ranges keep date_represented = start."""
    if isinstance(interval, DateRange):
        return {
            "date_represented": interval.start,
            "date_range_start": interval.start,
            "date_range_end": interval.end,
        }
    return {
        "date_represented": interval.day,
        "date_range_start": None,
        "date_range_end": None,
    }

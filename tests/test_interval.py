"""Tests for calendar-date intervals."""

from __future__ import annotations

from datetime import date

import pytest

from impacttrace.matching.interval import (
    DateRange,
    IntervalValidationError,
    SingleDay,
    contains_day,
    inclusive_day_count,
    interval_from_fields,
    interval_to_fields,
    overlap_window,
    overlaps,
)


def JAN(day: int) -> date:
    return date(2024, 1, day)


class TestOverlaps:
    @pytest.mark.parametrize(
        ("a", "b", "expected"),
        [
            (DateRange(JAN(1), JAN(10)), DateRange(JAN(5), JAN(15)), True),
            (DateRange(JAN(1), JAN(10)), DateRange(JAN(10), JAN(20)), True),
            (DateRange(JAN(1), JAN(10)), DateRange(JAN(11), JAN(20)), False),
            (SingleDay(JAN(3)), DateRange(JAN(1), JAN(10)), True),
            (SingleDay(JAN(3)), SingleDay(JAN(3)), True),
            (SingleDay(JAN(3)), SingleDay(JAN(4)), False),
        ],
    )
    def test_overlaps_is_inclusive_and_symmetric(self, a, b, expected):
        assert overlaps(a, b) is expected
        assert overlaps(b, a) is expected

    def test_overlap_window_single_shared_day_is_single_day(self):
        window = overlap_window(DateRange(JAN(1), JAN(10)), DateRange(JAN(10), JAN(20)))
        assert window == SingleDay(JAN(10))

    def test_overlap_window_none_when_disjoint(self):
        assert overlap_window(SingleDay(JAN(1)), SingleDay(JAN(2))) is None

    def test_overlap_window_range(self):
        window = overlap_window(DateRange(JAN(1), JAN(10)), DateRange(JAN(5), JAN(31)))
        assert window == DateRange(JAN(5), JAN(10))


def test_inclusive_day_count():
    assert inclusive_day_count(SingleDay(JAN(1))) == 1
    assert inclusive_day_count(DateRange(JAN(1), JAN(10))) == 10
    assert inclusive_day_count(DateRange(date(2024, 2, 28), date(2024, 3, 1))) == 3


def test_contains_day():
    assert contains_day(DateRange(JAN(1), JAN(10)), JAN(10))
    assert not contains_day(SingleDay(JAN(1)), JAN(2))


def test_date_range_rejects_start_after_end():
    with pytest.raises(IntervalValidationError):
        DateRange(JAN(10), JAN(1))


class TestIntervalFromFields:
    def test_single_date(self):
        assert interval_from_fields(JAN(5)) == SingleDay(JAN(5))

    def test_range_with_legacy_mirror_is_accepted(self):
        assert interval_from_fields(JAN(1), JAN(1), JAN(10)) == DateRange(JAN(1), JAN(10))

    def test_range_without_single_date(self):
        assert interval_from_fields(None, JAN(1), JAN(10)) == DateRange(JAN(1), JAN(10))

    @pytest.mark.parametrize(
        ("single", "start", "end"),
        [
            (None, JAN(1), None),
            (None, None, JAN(10)),
            (None, None, None),
            (JAN(3), JAN(1), JAN(10)),
            (None, JAN(10), JAN(1)),
        ],
    )
    def test_invalid_combinations_raise(self, single, start, end):
        with pytest.raises(IntervalValidationError):
            interval_from_fields(single, start, end)

    def test_validation_error_is_value_error(self):
        assert issubclass(IntervalValidationError, ValueError)


def test_interval_to_fields_range_mirrors_start():
    assert interval_to_fields(DateRange(JAN(1), JAN(10))) == {
        "date_represented": JAN(1),
        "date_range_start": JAN(1),
        "date_range_end": JAN(10),
    }
    assert interval_to_fields(SingleDay(JAN(4))) == {
        "date_represented": JAN(4),
        "date_range_start": None,
        "date_range_end": None,
    }

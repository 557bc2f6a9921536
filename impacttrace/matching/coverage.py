"""Coverage of a claim's time span by evidence.

Coverage is measured against the claim's own days: a 10-day claim with six
days evidenced is 60% covered, whatever the length of the evidence.
"""

from __future__ import annotations

import math
from collections.abc import Hashable, Iterable, Mapping
from datetime import date, timedelta
from fractions import Fraction

from impacttrace.matching.interval import (
    Interval,
    inclusive_day_count,
    overlap_window,
)


def round_half_up(value: Fraction) -> int:
    """Round a non-negative rational to the nearest integer, halves going up."""
    return math.floor(value + Fraction(1, 2))


def _percent(part: int, whole: int) -> int:
    if whole <= 0:
        return 0
    pct = round_half_up(Fraction(part * 100, whole))
    return max(0, min(100, pct))


def coverage_percent(claim_interval: Interval, evidence_interval: Interval) -> int:
    """Percentage (0-100) of the claim's days that the evidence interval covers.

    Single-day claim: 100 when the evidence contains the day, else 0.
    Ranged claim of D days: overlapping days / D, so a single evidence day
    inside the range gives round(100 / D).
    """
    window = overlap_window(claim_interval, evidence_interval)
    if window is None:
        return 0
    return _percent(inclusive_day_count(window), inclusive_day_count(claim_interval))


def covered_days(claim_interval: Interval, evidence_intervals: Iterable[Interval]) -> set[date]:
    """Distinct claim days covered by any of evidence_intervals."""
    days: set[date] = set()
    for evidence_interval in evidence_intervals:
        window = overlap_window(claim_interval, evidence_interval)
        if window is None:
            continue
        day = window.start
        while day <= window.end:
            days.add(day)
            day += timedelta(days=1)
    return days


def completion_percent(claim_interval: Interval, evidence_intervals: Iterable[Interval]) -> int:
    """Coverage of the claim by the union of several evidence items."""
    days = covered_days(claim_interval, evidence_intervals)
    return _percent(len(days), inclusive_day_count(claim_interval))


def average_coverage(percentages: Mapping[Hashable, int], selected_ids: Iterable[Hashable]) -> int:
    """Unweighted mean coverage over the selected claims only; 0 when none are selected.

    Selected ids without a known percentage are ignored.
    """
    values = [percentages[claim_id] for claim_id in selected_ids if claim_id in percentages]
    if not values:
        return 0
    return round_half_up(Fraction(sum(values), len(values)))

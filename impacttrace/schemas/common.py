"""Shared schema pieces: the date / date-range column triple."""

from __future__ import annotations

from datetime import date

from pydantic import BaseModel, model_validator

from impacttrace.matching.interval import Interval, interval_from_fields


class DatedModel(BaseModel):
    """Single date XOR inclusive date range, validated at construction."""

    date_represented: date | None = None
    date_range_start: date | None = None
    date_range_end: date | None = None

    @model_validator(mode="after")
    def _check_interval(self):
        interval_from_fields(self.date_represented, self.date_range_start, self.date_range_end)
        return self

    @property
    def interval(self) -> Interval:
        return interval_from_fields(
            self.date_represented, self.date_range_start, self.date_range_end
        )

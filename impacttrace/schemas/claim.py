"""KPI, claim (KPI update) and location schemas."""

from __future__ import annotations

import uuid
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from impacttrace.matching.interval import Interval, interval_from_fields
from impacttrace.schemas.common import DatedModel


class KpiRead(BaseModel):
    """Schema for reading a KPI."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    initiative_id: uuid.UUID
    title: str
    unit_of_measurement: str | None = None
    metric_type: str = "number"
    category: str = "output"


class LocationRead(BaseModel):
    """Schema for reading a location."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    initiative_id: uuid.UUID
    name: str
    description: str | None = None
    latitude: float
    longitude: float


class LocationCreate(BaseModel):
    """Payload for adding a location to an initiative."""

    model_config = ConfigDict(extra="forbid")

    initiative_id: uuid.UUID
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class ClaimRead(DatedModel):
    """One impact claim as loaded from kpi_updates."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    kpi_id: uuid.UUID
    value: float
    location_id: uuid.UUID | None = None
    label: str | None = None
    note: str | None = None
    created_at: datetime | None = None


class ClaimCreate(DatedModel):
    """Payload for recording a new claim."""

    model_config = ConfigDict(extra="forbid")

    kpi_id: uuid.UUID
    value: float
    location_id: uuid.UUID | None = None
    label: str | None = Field(None, max_length=255)
    note: str | None = None


class ClaimUpdate(BaseModel):
    """Partial claim update. Date fields, when any is sent, are replaced together."""

    model_config = ConfigDict(extra="forbid")

    value: float | None = None
    date_represented: date | None = None
    date_range_start: date | None = None
    date_range_end: date | None = None
    location_id: uuid.UUID | None = None
    label: str | None = Field(None, max_length=255)
    note: str | None = None

    @model_validator(mode="after")
    def _check_interval(self):
        self.interval()
        if "value" in self.model_fields_set and self.value is None:
            raise ValueError("value cannot be null")
        return self

    def interval(self) -> Interval | None:
        """New interval, or None when no date field was sent."""
        if not self.model_fields_set & {"date_represented", "date_range_start", "date_range_end"}:
            return None
        return interval_from_fields(
            self.date_represented, self.date_range_start, self.date_range_end
        )


class ClaimCompletion(BaseModel):
    """How completely a claim's span is evidenced by its directly linked evidence."""

    claim_id: uuid.UUID
    value: float
    completion_percent: int = Field(..., ge=0, le=100)
    is_fully_proven: bool
    evidence_ids: list[uuid.UUID] = Field(default_factory=list)


class ClaimDateGroup(BaseModel):
    """Claims sharing the same date or date range, with their combined completion."""

    date_represented: date
    date_range_start: date | None = None
    date_range_end: date | None = None
    total_value: float
    completion_percent: int = Field(..., ge=0, le=100)
    is_fully_proven: bool
    claims: list[ClaimCompletion] = Field(default_factory=list)
    evidence_ids: list[uuid.UUID] = Field(default_factory=list)


class EvidenceTypeCount(BaseModel):
    """Evidence count for one evidence type within a KPI."""

    type: str
    count: int
    percentage: int
    label: str


class KpiEvidenceSummary(BaseModel):
    """Per-KPI evidence rollup: total claimed value and mean claim completion."""

    kpi_id: uuid.UUID
    total_value: float
    total_claims: int
    evidence_count: int
    evidence_percentage: int = Field(..., ge=0, le=100)
    evidence_types: list[EvidenceTypeCount] = Field(default_factory=list)
    claims: list[ClaimCompletion] = Field(default_factory=list)

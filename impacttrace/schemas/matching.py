"""Matching query and result schemas."""

from __future__ import annotations

import uuid

from pydantic import BaseModel, ConfigDict, Field

from impacttrace.matching.interval import DateRange, SingleDay
from impacttrace.schemas.claim import ClaimRead


class MatchQuery(BaseModel):
    """Which KPIs to search, over which interval, optionally at one location.

    Frozen so results can be tagged with (and compared against) their query.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    kpi_ids: tuple[uuid.UUID, ...]
    interval: SingleDay | DateRange
    location_id: uuid.UUID | None = None


class MatchedClaim(ClaimRead):
    """Claim annotated for presentation: KPI metadata, location name, coverage."""

    kpi_title: str | None = None
    kpi_unit: str | None = None
    location_name: str | None = None
    coverage_percent: int = Field(..., ge=0, le=100)


class KpiMatch(BaseModel):
    """Matched claims of one KPI with their summed value."""

    kpi_id: uuid.UUID
    kpi_title: str | None = None
    kpi_unit: str | None = None
    total: float
    claims: list[MatchedClaim] = Field(default_factory=list)


class MatchWarning(BaseModel):
    """Non-blocking failure while loading one KPI's claims."""

    kpi_id: uuid.UUID
    message: str


class MatchResult(BaseModel):
    """Result of one matching pass, tagged with the query it answers."""

    query: MatchQuery
    per_kpi: list[KpiMatch] = Field(default_factory=list)
    warnings: list[MatchWarning] = Field(default_factory=list)

    @property
    def claims(self) -> list[MatchedClaim]:
        return [claim for match in self.per_kpi for claim in match.claims]

    @property
    def claim_ids(self) -> list[uuid.UUID]:
        return [claim.id for claim in self.claims]

    def coverage_by_claim(self) -> dict[uuid.UUID, int]:
        return {claim.id: claim.coverage_percent for claim in self.claims}

"""Evidence payload and result schemas.

For kpi_ids / claim_ids / location_ids an absent field and an empty list mean
different things: absent leaves existing links untouched, [] clears them.
EvidenceUpdate.link_changes() turns that distinction into LinkChange values.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from enum import Enum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

from impacttrace.evidence.link_change import LinkChange, LinkType
from impacttrace.matching.interval import Interval, interval_from_fields
from impacttrace.schemas.common import DatedModel


class EvidenceType(str, Enum):
    VISUAL_PROOF = "visual_proof"
    DOCUMENTATION = "documentation"
    TESTIMONY = "testimony"
    FINANCIALS = "financials"


class EvidenceCreate(DatedModel):
    """Payload for creating evidence. file_sizes is parallel to file_urls."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    initiative_id: uuid.UUID | None = None
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    type: EvidenceType
    file_url: str | None = None
    file_type: str | None = Field(None, max_length=100)
    file_urls: list[str] = Field(default_factory=list)
    file_sizes: list[int] = Field(default_factory=list)
    kpi_ids: list[uuid.UUID] = Field(default_factory=list)
    claim_ids: list[uuid.UUID] = Field(
        default_factory=list,
        validation_alias=AliasChoices("claim_ids", "kpi_update_ids"),
    )
    location_ids: list[uuid.UUID] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_file_sizes(self):
        if len(self.file_sizes) > len(self.file_urls):
            raise ValueError("file_sizes has more entries than file_urls")
        if any(size < 0 for size in self.file_sizes):
            raise ValueError("file_sizes must be non-negative")
        return self


class EvidenceUpdate(BaseModel):
    """Partial evidence update; only fields present in the payload are applied.

    file_urls / file_sizes append newly uploaded files after the existing
    ones. Link fields take a list; null is rejected, send [] to clear.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    title: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    type: EvidenceType | None = None
    file_url: str | None = None
    file_type: str | None = Field(None, max_length=100)
    date_represented: date | None = None
    date_range_start: date | None = None
    date_range_end: date | None = None
    kpi_ids: list[uuid.UUID] | None = None
    claim_ids: list[uuid.UUID] | None = Field(
        None,
        validation_alias=AliasChoices("claim_ids", "kpi_update_ids"),
    )
    location_ids: list[uuid.UUID] | None = None
    file_urls: list[str] = Field(default_factory=list)
    file_sizes: list[int] = Field(default_factory=list)
    expected_updated_at: datetime | None = Field(
        None, description="Optimistic-lock precondition: the updated_at the caller last saw"
    )

    @model_validator(mode="after")
    def _check_interval(self):
        self.interval()
        for name in ("title", "type"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        for name in ("kpi_ids", "claim_ids", "location_ids"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null; send [] to clear")
        if len(self.file_sizes) > len(self.file_urls):
            raise ValueError("file_sizes has more entries than file_urls")
        if any(size < 0 for size in self.file_sizes):
            raise ValueError("file_sizes must be non-negative")
        return self

    def interval(self) -> Interval | None:
        """New interval, or None when no date field was sent."""
        if not self.model_fields_set & {"date_represented", "date_range_start", "date_range_end"}:
            return None
        return interval_from_fields(
            self.date_represented, self.date_range_start, self.date_range_end
        )

    def scalar_changes(self) -> dict:
        """Evidence columns to overwrite (date fields excluded; see interval())."""
        fields = {"title", "description", "type", "file_url", "file_type"} & self.model_fields_set
        changes = {name: getattr(self, name) for name in fields}
        if isinstance(changes.get("type"), EvidenceType):
            changes["type"] = changes["type"].value
        return changes

    def link_changes(self) -> dict[LinkType, LinkChange]:
        """Per link type: omit when the field was absent, else the authoritative list."""
        fields = {
            LinkType.KPI: "kpi_ids",
            LinkType.CLAIM: "claim_ids",
            LinkType.LOCATION: "location_ids",
        }
        return {
            link_type: (
                LinkChange.from_optional(getattr(self, name))
                if name in self.model_fields_set
                else LinkChange.omit()
            )
            for link_type, name in fields.items()
        }


class EvidenceFileRead(BaseModel):
    """Schema for one evidence file (or the legacy single file_url)."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    file_url: str
    file_name: str | None = None
    file_type: str | None = None
    file_size: int | None = None
    display_order: int = 0


class EvidenceRead(DatedModel):
    """Evidence row with its link sets flattened to id lists."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    initiative_id: uuid.UUID | None = None
    user_id: uuid.UUID
    type: EvidenceType
    title: str
    description: str | None = None
    file_url: str | None = None
    file_type: str | None = None
    created_at: datetime
    updated_at: datetime
    kpi_ids: list[uuid.UUID] = Field(default_factory=list)
    claim_ids: list[uuid.UUID] = Field(default_factory=list)
    location_ids: list[uuid.UUID] = Field(default_factory=list)


class EvidenceWriteResult(BaseModel):
    """Outcome of a create/update: the row plus any link types that failed to write."""

    evidence: EvidenceRead
    failed_links: dict[LinkType, str] = Field(default_factory=dict)

    @property
    def partial(self) -> bool:
        return bool(self.failed_links)


class EvidenceDeleteResult(BaseModel):
    """Rows removed by a delete plus non-fatal bookkeeping warnings."""

    evidence_id: uuid.UUID
    kpi_links: int = 0
    claim_links: int = 0
    location_links: int = 0
    files: int = 0
    bytes_released: int = 0
    warnings: list[str] = Field(default_factory=list)

"""Evidence ORM: proof item (file, link, testimony) supporting impact claims.

Link rows live in the evidence_* junction tables; the legacy single file_url
column stays populated with the first uploaded file.
"""

from __future__ import annotations

import uuid
from datetime import UTC, date, datetime

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from impacttrace.db.session import Base

EVIDENCE_TYPES = ("visual_proof", "documentation", "testimony", "financials")


class Evidence(Base):
    """One evidence item of an initiative."""

    __tablename__ = "evidence"

    __table_args__ = (
        CheckConstraint(
            "type IN ('visual_proof', 'documentation', 'testimony', 'financials')",
            name="ck_evidence_type",
        ),
        CheckConstraint(
            "(date_range_start IS NULL AND date_range_end IS NULL) OR "
            "(date_range_start IS NOT NULL AND date_range_end IS NOT NULL "
            "AND date_range_start <= date_range_end)",
            name="ck_evidence_date_range",
        ),
        Index("ix_evidence_date_range", "date_range_start", "date_range_end"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    initiative_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("initiatives.id", ondelete="CASCADE"), nullable=True, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    date_represented: Mapped[date] = mapped_column(Date, nullable=False)
    date_range_start: Mapped[date | None] = mapped_column(Date, nullable=True)
    date_range_end: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    files: Mapped[list["EvidenceFile"]] = relationship(
        "EvidenceFile",
        back_populates="evidence",
        order_by="EvidenceFile.display_order",
        passive_deletes=True,
    )

"""KPIUpdate ORM: one impact claim: a KPI value for a date or a date range.

date_represented is always set; for a range it mirrors date_range_start.
"""

from __future__ import annotations

import uuid
from datetime import UTC, date, datetime

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from impacttrace.db.session import Base


class KPIUpdate(Base):
    """Impact claim recorded against a KPI, optionally at a location."""

    __tablename__ = "kpi_updates"

    __table_args__ = (
        CheckConstraint(
            "(date_range_start IS NULL AND date_range_end IS NULL) OR "
            "(date_range_start IS NOT NULL AND date_range_end IS NOT NULL "
            "AND date_range_start <= date_range_end)",
            name="ck_kpi_updates_date_range",
        ),
        Index("ix_kpi_updates_date_range", "date_range_start", "date_range_end"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    kpi_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("kpis.id", ondelete="CASCADE"), nullable=False, index=True
    )
    value: Mapped[float] = mapped_column(Float, nullable=False)
    date_represented: Mapped[date] = mapped_column(Date, nullable=False)
    date_range_start: Mapped[date | None] = mapped_column(Date, nullable=True)
    date_range_end: Mapped[date | None] = mapped_column(Date, nullable=True)
    location_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("locations.id", ondelete="SET NULL"), nullable=True, index=True
    )
    label: Mapped[str | None] = mapped_column(String(255), nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    kpi: Mapped["KPI"] = relationship("KPI", back_populates="claims")

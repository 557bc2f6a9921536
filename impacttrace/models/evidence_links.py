"""Evidence junction tables: evidence<->KPI, evidence<->claim, evidence<->location.

Each row is keyed by (evidence_id, child_id) and cascades from both sides.
Neither side owns the row; evidence.links is the only writer.
"""

from __future__ import annotations

import uuid

from sqlalchemy import ForeignKey, PrimaryKeyConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from impacttrace.db.session import Base


class EvidenceKPI(Base):
    """Legacy KPI-level link: the evidence supports every claim of the KPI."""

    __tablename__ = "evidence_kpis"

    __table_args__ = (PrimaryKeyConstraint("evidence_id", "kpi_id"),)

    evidence_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("evidence.id", ondelete="CASCADE"), nullable=False
    )
    kpi_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("kpis.id", ondelete="CASCADE"), nullable=False, index=True
    )


class EvidenceKPIUpdate(Base):
    """Precise link: the evidence substantiates one specific claim."""

    __tablename__ = "evidence_kpi_updates"

    __table_args__ = (PrimaryKeyConstraint("evidence_id", "kpi_update_id"),)

    evidence_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("evidence.id", ondelete="CASCADE"), nullable=False
    )
    kpi_update_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("kpi_updates.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)


class EvidenceLocation(Base):
    """Evidence gathered at a location (0..n per evidence)."""

    __tablename__ = "evidence_locations"

    __table_args__ = (PrimaryKeyConstraint("evidence_id", "location_id"),)

    evidence_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("evidence.id", ondelete="CASCADE"), nullable=False
    )
    location_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("locations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

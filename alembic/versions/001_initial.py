"""Initial schema: organizations, initiatives, KPIs, claims, locations, evidence and links.

Revision ID: 001
Revises:
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_DATE_RANGE_CHECK = (
    "(date_range_start IS NULL AND date_range_end IS NULL) OR "
    "(date_range_start IS NOT NULL AND date_range_end IS NOT NULL "
    "AND date_range_start <= date_range_end)"
)


def _timestamps(with_updated: bool = True) -> list[sa.Column]:
    cols = [sa.Column("created_at", sa.DateTime(timezone=True), nullable=False)]
    if with_updated:
        cols.append(sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False))
    return cols


def upgrade() -> None:
    op.create_table(
        "organizations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("storage_used_bytes", sa.BigInteger(), nullable=False, server_default="0"),
        *_timestamps(with_updated=False),
    )

    op.create_table(
        "initiatives",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "organization_id",
            sa.Uuid(),
            sa.ForeignKey("organizations.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        *_timestamps(with_updated=False),
    )
    op.create_index("ix_initiatives_organization_id", "initiatives", ["organization_id"])
    op.create_index("ix_initiatives_user_id", "initiatives", ["user_id"])

    op.create_table(
        "kpis",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "initiative_id",
            sa.Uuid(),
            sa.ForeignKey("initiatives.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("metric_type", sa.String(16), nullable=False, server_default="number"),
        sa.Column("unit_of_measurement", sa.String(64), nullable=True),
        sa.Column("category", sa.String(16), nullable=False, server_default="output"),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_kpis_initiative_id", "kpis", ["initiative_id"])
    op.create_index("ix_kpis_user_id", "kpis", ["user_id"])

    op.create_table(
        "locations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "initiative_id",
            sa.Uuid(),
            sa.ForeignKey("initiatives.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        *_timestamps(with_updated=False),
    )
    op.create_index("ix_locations_initiative_id", "locations", ["initiative_id"])
    op.create_index("ix_locations_user_id", "locations", ["user_id"])

    op.create_table(
        "kpi_updates",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("kpi_id", sa.Uuid(), sa.ForeignKey("kpis.id", ondelete="CASCADE"), nullable=False),
        sa.Column("value", sa.Float(), nullable=False),
        sa.Column("date_represented", sa.Date(), nullable=False),
        sa.Column("date_range_start", sa.Date(), nullable=True),
        sa.Column("date_range_end", sa.Date(), nullable=True),
        sa.Column(
            "location_id",
            sa.Uuid(),
            sa.ForeignKey("locations.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("label", sa.String(255), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint(_DATE_RANGE_CHECK, name="ck_kpi_updates_date_range"),
    )
    op.create_index("ix_kpi_updates_kpi_id", "kpi_updates", ["kpi_id"])
    op.create_index("ix_kpi_updates_location_id", "kpi_updates", ["location_id"])
    op.create_index("ix_kpi_updates_user_id", "kpi_updates", ["user_id"])
    op.create_index(
        "ix_kpi_updates_date_range", "kpi_updates", ["date_range_start", "date_range_end"]
    )

    op.create_table(
        "evidence",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "initiative_id",
            sa.Uuid(),
            sa.ForeignKey("initiatives.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("file_url", sa.Text(), nullable=True),
        sa.Column("file_type", sa.String(100), nullable=True),
        sa.Column("date_represented", sa.Date(), nullable=False),
        sa.Column("date_range_start", sa.Date(), nullable=True),
        sa.Column("date_range_end", sa.Date(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "type IN ('visual_proof', 'documentation', 'testimony', 'financials')",
            name="ck_evidence_type",
        ),
        sa.CheckConstraint(_DATE_RANGE_CHECK, name="ck_evidence_date_range"),
    )
    op.create_index("ix_evidence_initiative_id", "evidence", ["initiative_id"])
    op.create_index("ix_evidence_user_id", "evidence", ["user_id"])
    op.create_index("ix_evidence_date_range", "evidence", ["date_range_start", "date_range_end"])

    op.create_table(
        "evidence_files",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "evidence_id", sa.Uuid(), sa.ForeignKey("evidence.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("file_url", sa.Text(), nullable=False),
        sa.Column("file_name", sa.String(255), nullable=True),
        sa.Column("file_type", sa.String(100), nullable=True),
        sa.Column("file_size", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(with_updated=False),
    )
    op.create_index("ix_evidence_files_evidence_id", "evidence_files", ["evidence_id"])
    op.create_index(
        "ix_evidence_files_display_order", "evidence_files", ["evidence_id", "display_order"]
    )

    op.create_table(
        "evidence_kpis",
        sa.Column(
            "evidence_id", sa.Uuid(), sa.ForeignKey("evidence.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("kpi_id", sa.Uuid(), sa.ForeignKey("kpis.id", ondelete="CASCADE"), nullable=False),
        sa.PrimaryKeyConstraint("evidence_id", "kpi_id"),
    )
    op.create_index("ix_evidence_kpis_kpi_id", "evidence_kpis", ["kpi_id"])

    op.create_table(
        "evidence_kpi_updates",
        sa.Column(
            "evidence_id", sa.Uuid(), sa.ForeignKey("evidence.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column(
            "kpi_update_id",
            sa.Uuid(),
            sa.ForeignKey("kpi_updates.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.Uuid(), nullable=True),
        sa.PrimaryKeyConstraint("evidence_id", "kpi_update_id"),
    )
    op.create_index(
        "ix_evidence_kpi_updates_kpi_update_id", "evidence_kpi_updates", ["kpi_update_id"]
    )

    op.create_table(
        "evidence_locations",
        sa.Column(
            "evidence_id", sa.Uuid(), sa.ForeignKey("evidence.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column(
            "location_id",
            sa.Uuid(),
            sa.ForeignKey("locations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.Uuid(), nullable=True),
        sa.PrimaryKeyConstraint("evidence_id", "location_id"),
    )
    op.create_index("ix_evidence_locations_location_id", "evidence_locations", ["location_id"])


def downgrade() -> None:
    for table in (
        "evidence_locations",
        "evidence_kpi_updates",
        "evidence_kpis",
        "evidence_files",
        "evidence",
        "kpi_updates",
        "locations",
        "kpis",
        "initiatives",
        "organizations",
    ):
        op.drop_table(table)

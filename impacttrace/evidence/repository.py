"""Evidence read interface. Read-only; all writes go through evidence.links.

Rows are returned as EvidenceRead with their link tables flattened to
kpi_ids / claim_ids / location_ids.
"""

from __future__ import annotations

import uuid
from collections import defaultdict
from collections.abc import Iterable

from sqlalchemy import func
from sqlalchemy.orm import Session

from impacttrace.matching.coverage import coverage_percent
from impacttrace.matching.interval import interval_from_fields
from impacttrace.models import (
    KPI,
    Evidence,
    EvidenceFile,
    EvidenceKPI,
    EvidenceKPIUpdate,
    EvidenceLocation,
    KPIUpdate,
    Location,
)
from impacttrace.schemas.claim import ClaimRead
from impacttrace.schemas.evidence import EvidenceFileRead, EvidenceRead
from impacttrace.schemas.matching import MatchedClaim
from impacttrace.storage.file_store import file_name_from_url

_LINK_COLUMNS = (
    ("kpi_ids", EvidenceKPI, EvidenceKPI.kpi_id),
    ("claim_ids", EvidenceKPIUpdate, EvidenceKPIUpdate.kpi_update_id),
    ("location_ids", EvidenceLocation, EvidenceLocation.location_id),
)


def _link_ids(db: Session, evidence_ids: list[uuid.UUID]) -> dict[str, dict[uuid.UUID, list[uuid.UUID]]]:
    """Per link field, map evidence id to its linked ids (one query per table)."""
    result: dict[str, dict[uuid.UUID, list[uuid.UUID]]] = {}
    for field, model, column in _LINK_COLUMNS:
        by_evidence: dict[uuid.UUID, list[uuid.UUID]] = defaultdict(list)
        if evidence_ids:
            rows = (
                db.query(model.evidence_id, column)
                .filter(model.evidence_id.in_(evidence_ids))
                .all()
            )
            for evidence_id, linked_id in rows:
                by_evidence[evidence_id].append(linked_id)
        result[field] = by_evidence
    return result


def to_evidence_reads(db: Session, rows: Iterable[Evidence]) -> list[EvidenceRead]:
    rows = list(rows)
    links = _link_ids(db, [r.id for r in rows])
    return [
        EvidenceRead.model_validate(
            {
                "id": r.id,
                "initiative_id": r.initiative_id,
                "user_id": r.user_id,
                "type": r.type,
                "title": r.title,
                "description": r.description,
                "file_url": r.file_url,
                "file_type": r.file_type,
                "date_represented": r.date_represented,
                "date_range_start": r.date_range_start,
                "date_range_end": r.date_range_end,
                "created_at": r.created_at,
                "updated_at": r.updated_at,
                **{field: links[field].get(r.id, []) for field, _, _ in _LINK_COLUMNS},
            }
        )
        for r in rows
    ]


def get_evidence(
    db: Session, evidence_id: uuid.UUID, user_id: uuid.UUID | None = None
) -> EvidenceRead | None:
    """Return one evidence item with its links, or None if not found (or not the user's)."""
    query = db.query(Evidence).filter(Evidence.id == evidence_id)
    if user_id is not None:
        query = query.filter(Evidence.user_id == user_id)
    row = query.first()
    if row is None:
        return None
    return to_evidence_reads(db, [row])[0]


def list_evidence(
    db: Session,
    initiative_id: uuid.UUID | None = None,
    kpi_id: uuid.UUID | None = None,
) -> list[EvidenceRead]:
    """Evidence newest first, optionally limited to an initiative and/or a KPI-level link."""
    query = db.query(Evidence)
    if kpi_id is not None:
        query = query.join(EvidenceKPI, EvidenceKPI.evidence_id == Evidence.id).filter(
            EvidenceKPI.kpi_id == kpi_id
        )
    if initiative_id is not None:
        query = query.filter(Evidence.initiative_id == initiative_id)
    rows = query.order_by(Evidence.created_at.desc()).all()
    return to_evidence_reads(db, rows)


def list_evidence_for_claim(
    db: Session, claim_id: uuid.UUID, user_id: uuid.UUID | None = None
) -> list[EvidenceRead]:
    """Evidence directly linked to one claim."""
    query = (
        db.query(Evidence)
        .join(EvidenceKPIUpdate, EvidenceKPIUpdate.evidence_id == Evidence.id)
        .filter(EvidenceKPIUpdate.kpi_update_id == claim_id)
    )
    if user_id is not None:
        query = query.filter(Evidence.user_id == user_id)
    return to_evidence_reads(db, query.order_by(Evidence.created_at.desc()).all())


def list_claims_for_evidence(
    db: Session, evidence_id: uuid.UUID, user_id: uuid.UUID
) -> list[MatchedClaim]:
    """Claims an evidence item is linked to, with KPI metadata and the evidence's coverage of each."""
    evidence = (
        db.query(Evidence)
        .filter(Evidence.id == evidence_id, Evidence.user_id == user_id)
        .first()
    )
    if evidence is None:
        return []
    evidence_interval = interval_from_fields(
        evidence.date_represented, evidence.date_range_start, evidence.date_range_end
    )

    rows = (
        db.query(KPIUpdate, KPI.title, KPI.unit_of_measurement, Location.name)
        .join(EvidenceKPIUpdate, EvidenceKPIUpdate.kpi_update_id == KPIUpdate.id)
        .join(KPI, KPI.id == KPIUpdate.kpi_id)
        .outerjoin(Location, Location.id == KPIUpdate.location_id)
        .filter(EvidenceKPIUpdate.evidence_id == evidence_id, KPIUpdate.user_id == user_id)
        .order_by(KPIUpdate.date_represented.asc())
        .all()
    )
    claims = []
    for claim_row, kpi_title, kpi_unit, location_name in rows:
        claim = ClaimRead.model_validate(claim_row)
        claims.append(
            MatchedClaim(
                **claim.model_dump(),
                kpi_title=kpi_title,
                kpi_unit=kpi_unit,
                location_name=location_name,
                coverage_percent=coverage_percent(claim.interval, evidence_interval),
            )
        )
    return claims


def list_files_for_evidence(
    db: Session, evidence_id: uuid.UUID, user_id: uuid.UUID
) -> list[EvidenceFileRead]:
    """Files of an evidence item in upload order.

    Evidence created before multi-file support has no evidence_files rows; its
    legacy file_url is returned as a single file instead.
    """
    evidence = (
        db.query(Evidence)
        .filter(Evidence.id == evidence_id, Evidence.user_id == user_id)
        .first()
    )
    if evidence is None:
        return []
    files = (
        db.query(EvidenceFile)
        .filter(EvidenceFile.evidence_id == evidence_id)
        .order_by(EvidenceFile.display_order.asc())
        .all()
    )
    if files:
        return [EvidenceFileRead.model_validate(f) for f in files]
    if evidence.file_url:
        return [
            EvidenceFileRead(
                id=evidence.id,
                file_url=evidence.file_url,
                file_name=file_name_from_url(evidence.file_url),
                file_type=evidence.file_type or "unknown",
                display_order=0,
            )
        ]
    return []


def evidence_stats_by_type(db: Session, initiative_id: uuid.UUID | None = None) -> dict[str, int]:
    """Number of evidence items per type."""
    query = db.query(Evidence.type, func.count(Evidence.id))
    if initiative_id is not None:
        query = query.filter(Evidence.initiative_id == initiative_id)
    return {evidence_type: count for evidence_type, count in query.group_by(Evidence.type).all()}

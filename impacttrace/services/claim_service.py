"""Claim service: record, change and remove impact claims, and roll up how well they are evidenced.

Creating a claim, or moving it in time or space, links it to evidence that is
already attached to its KPI and fits its dates and location. Completion only
counts evidence linked directly to the claim.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import Counter
from collections.abc import Callable, Sequence
from fractions import Fraction

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from impacttrace.matching.coverage import completion_percent, covered_days, round_half_up
from impacttrace.matching.interval import (
    Interval,
    inclusive_day_count,
    interval_from_fields,
    interval_to_fields,
    overlaps,
)
from impacttrace.matching.matcher import ClaimFetcher
from impacttrace.models import KPI, Evidence, EvidenceKPI, EvidenceKPIUpdate, EvidenceLocation, KPIUpdate
from impacttrace.schemas.claim import (
    ClaimCompletion,
    ClaimCreate,
    ClaimDateGroup,
    ClaimRead,
    ClaimUpdate,
    EvidenceTypeCount,
    KpiEvidenceSummary,
    KpiRead,
)

logger = logging.getLogger(__name__)


class ClaimNotFoundError(LookupError):
    """Raised when a claim does not exist or belongs to another user."""

    pass


class KpiNotFoundError(LookupError):
    """Raised when a KPI does not exist or belongs to another user."""

    pass


def _claim_interval(row: KPIUpdate | Evidence) -> Interval:
    return interval_from_fields(row.date_represented, row.date_range_start, row.date_range_end)


def _get_owned_claim(db: Session, claim_id: uuid.UUID, user_id: uuid.UUID) -> KPIUpdate:
    row = (
        db.query(KPIUpdate)
        .filter(KPIUpdate.id == claim_id, KPIUpdate.user_id == user_id)
        .first()
    )
    if row is None:
        raise ClaimNotFoundError(f"Claim {claim_id} not found")
    return row


def _get_owned_kpi(db: Session, kpi_id: uuid.UUID, user_id: uuid.UUID) -> KPI:
    kpi = db.query(KPI).filter(KPI.id == kpi_id, KPI.user_id == user_id).first()
    if kpi is None:
        raise KpiNotFoundError(f"KPI {kpi_id} not found")
    return kpi


def list_kpis(db: Session, initiative_id: uuid.UUID, user_id: uuid.UUID) -> list[KpiRead]:
    rows = (
        db.query(KPI)
        .filter(KPI.initiative_id == initiative_id, KPI.user_id == user_id)
        .order_by(KPI.display_order.asc(), KPI.created_at.desc())
        .all()
    )
    return [KpiRead.model_validate(r) for r in rows]


def get_claim(db: Session, claim_id: uuid.UUID, user_id: uuid.UUID) -> ClaimRead | None:
    row = (
        db.query(KPIUpdate)
        .filter(KPIUpdate.id == claim_id, KPIUpdate.user_id == user_id)
        .first()
    )
    return ClaimRead.model_validate(row) if row else None


def list_claims_for_kpi(db: Session, kpi_id: uuid.UUID, user_id: uuid.UUID) -> list[ClaimRead]:
    """The user's claims of one KPI, newest first."""
    rows = (
        db.query(KPIUpdate)
        .filter(KPIUpdate.kpi_id == kpi_id, KPIUpdate.user_id == user_id)
        .order_by(KPIUpdate.created_at.desc())
        .all()
    )
    return [ClaimRead.model_validate(r) for r in rows]


def claims_fetcher(session_factory: Callable[[], Session], user_id: uuid.UUID) -> ClaimFetcher:
    """Async per-KPI claim loader for the matcher; each call uses its own session in a worker thread."""

    def _load(kpi_id: uuid.UUID) -> list[ClaimRead]:
        db = session_factory()
        try:
            return list_claims_for_kpi(db, kpi_id, user_id)
        finally:
            db.close()

    async def fetch(kpi_id: uuid.UUID) -> Sequence[ClaimRead]:
        return await asyncio.to_thread(_load, kpi_id)

    return fetch


def auto_link_evidence(db: Session, claim: KPIUpdate) -> int:
    """Link the claim to KPI-level evidence that overlaps its dates and includes its location.

    Never raises for database errors: auto-linking is a convenience and must
    not fail the claim write. Returns the number of links added.
    """
    if claim.location_id is None:
        return 0
    claim_interval = _claim_interval(claim)
    try:
        candidates = (
            db.query(Evidence)
            .join(EvidenceKPI, EvidenceKPI.evidence_id == Evidence.id)
            .join(EvidenceLocation, EvidenceLocation.evidence_id == Evidence.id)
            .filter(
                EvidenceKPI.kpi_id == claim.kpi_id,
                EvidenceLocation.location_id == claim.location_id,
                Evidence.user_id == claim.user_id,
            )
            .distinct()
            .all()
        )
        existing = {
            evidence_id
            for (evidence_id,) in db.query(EvidenceKPIUpdate.evidence_id).filter(
                EvidenceKPIUpdate.kpi_update_id == claim.id
            )
        }
        new_ids = [
            e.id
            for e in candidates
            if e.id not in existing and overlaps(claim_interval, _claim_interval(e))
        ]
        if not new_ids:
            return 0
        with db.begin_nested():
            for evidence_id in new_ids:
                db.add(
                    EvidenceKPIUpdate(
                        evidence_id=evidence_id, kpi_update_id=claim.id, user_id=claim.user_id
                    )
                )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Auto-linking evidence to claim %s failed", claim.id)
        return 0
    logger.info("Auto-linked %d evidence item(s) to claim %s", len(new_ids), claim.id)
    return len(new_ids)


def add_claim(db: Session, payload: ClaimCreate, user_id: uuid.UUID) -> ClaimRead:
    """Record a claim against one of the user's KPIs, then auto-link matching evidence."""
    _get_owned_kpi(db, payload.kpi_id, user_id)
    row = KPIUpdate(
        kpi_id=payload.kpi_id,
        value=payload.value,
        location_id=payload.location_id,
        label=payload.label,
        note=payload.note,
        user_id=user_id,
        **interval_to_fields(payload.interval),
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    auto_link_evidence(db, row)
    return ClaimRead.model_validate(row)


def update_claim(
    db: Session, claim_id: uuid.UUID, payload: ClaimUpdate, user_id: uuid.UUID
) -> ClaimRead:
    """Apply the fields present in payload; re-run auto-linking when dates or location moved."""
    row = _get_owned_claim(db, claim_id, user_id)
    sent = payload.model_fields_set
    for name in ("value", "label", "note", "location_id"):
        if name not in sent:
            continue
        setattr(row, name, getattr(payload, name))
    interval = payload.interval()
    if interval is not None:
        for name, value in interval_to_fields(interval).items():
            setattr(row, name, value)
    db.commit()
    db.refresh(row)
    if interval is not None or "location_id" in sent:
        auto_link_evidence(db, row)
    return ClaimRead.model_validate(row)


def delete_claim(db: Session, claim_id: uuid.UUID, user_id: uuid.UUID) -> int:
    """Delete a claim and its evidence links. Returns the number of links removed."""
    row = _get_owned_claim(db, claim_id, user_id)
    links = (
        db.query(EvidenceKPIUpdate)
        .filter(EvidenceKPIUpdate.kpi_update_id == claim_id)
        .delete(synchronize_session=False)
    )
    db.delete(row)
    db.commit()
    logger.info("Claim %s deleted with %d evidence link(s)", claim_id, links)
    return links


def is_claim_covered(db: Session, claim_id: uuid.UUID) -> bool:
    """True when evidence is linked to the claim directly or to the claim's KPI."""
    claim = db.query(KPIUpdate).filter(KPIUpdate.id == claim_id).first()
    if claim is None:
        raise ClaimNotFoundError(f"Claim {claim_id} not found")
    direct = (
        db.query(EvidenceKPIUpdate.evidence_id)
        .filter(EvidenceKPIUpdate.kpi_update_id == claim_id)
        .first()
    )
    if direct is not None:
        return True
    kpi_level = (
        db.query(EvidenceKPI.evidence_id).filter(EvidenceKPI.kpi_id == claim.kpi_id).first()
    )
    return kpi_level is not None


def claim_completions(db: Session, kpi_id: uuid.UUID, user_id: uuid.UUID) -> list[ClaimCompletion]:
    """Completion of each of the KPI's claims from the evidence linked to that claim.

    Days covered by several evidence items count once. Claims come newest date first.
    """
    claims = (
        db.query(KPIUpdate)
        .filter(KPIUpdate.kpi_id == kpi_id, KPIUpdate.user_id == user_id)
        .order_by(KPIUpdate.date_represented.desc())
        .all()
    )
    if not claims:
        return []
    linked = (
        db.query(EvidenceKPIUpdate.kpi_update_id, Evidence)
        .join(Evidence, Evidence.id == EvidenceKPIUpdate.evidence_id)
        .filter(EvidenceKPIUpdate.kpi_update_id.in_([c.id for c in claims]))
        .all()
    )
    evidence_by_claim: dict[uuid.UUID, list[Evidence]] = {}
    for claim_id, evidence in linked:
        evidence_by_claim.setdefault(claim_id, []).append(evidence)

    completions = []
    for claim in claims:
        interval = _claim_interval(claim)
        evidence = evidence_by_claim.get(claim.id, [])
        evidence_intervals = [_claim_interval(e) for e in evidence]
        percent = completion_percent(interval, evidence_intervals)
        completions.append(
            ClaimCompletion(
                claim_id=claim.id,
                value=claim.value,
                completion_percent=percent,
                is_fully_proven=len(covered_days(interval, evidence_intervals))
                == inclusive_day_count(interval),
                evidence_ids=[e.id for e in evidence],
            )
        )
    return completions


def _mean_percent(values: list[int]) -> int:
    if not values:
        return 0
    return round_half_up(Fraction(sum(values), len(values)))


def evidence_by_dates(db: Session, kpi_id: uuid.UUID, user_id: uuid.UUID) -> list[ClaimDateGroup]:
    """Claim completions grouped by identical date or date range, latest first."""
    claims = {
        c.id: c
        for c in db.query(KPIUpdate).filter(
            KPIUpdate.kpi_id == kpi_id, KPIUpdate.user_id == user_id
        )
    }
    groups: dict[Interval, list[ClaimCompletion]] = {}
    for completion in claim_completions(db, kpi_id, user_id):
        interval = _claim_interval(claims[completion.claim_id])
        groups.setdefault(interval, []).append(completion)

    result = []
    for interval, members in groups.items():
        evidence_ids = list(dict.fromkeys(e for m in members for e in m.evidence_ids))
        result.append(
            ClaimDateGroup(
                **interval_to_fields(interval),
                total_value=sum(m.value for m in members),
                completion_percent=_mean_percent([m.completion_percent for m in members]),
                is_fully_proven=all(m.is_fully_proven for m in members),
                claims=members,
                evidence_ids=evidence_ids,
            )
        )
    result.sort(key=lambda g: g.date_range_start or g.date_represented, reverse=True)
    return result


def _type_label(evidence_type: str) -> str:
    return evidence_type.replace("_", " ", 1).title()


def kpi_evidence_summary(db: Session, kpi_id: uuid.UUID, user_id: uuid.UUID) -> KpiEvidenceSummary:
    """Total claimed value, mean claim completion and evidence type mix for one KPI."""
    _get_owned_kpi(db, kpi_id, user_id)
    completions = claim_completions(db, kpi_id, user_id)
    evidence_types = [
        t
        for (t,) in db.query(Evidence.type)
        .join(EvidenceKPI, EvidenceKPI.evidence_id == Evidence.id)
        .filter(EvidenceKPI.kpi_id == kpi_id)
    ]
    counts = Counter(evidence_types)
    total_evidence = len(evidence_types)
    return KpiEvidenceSummary(
        kpi_id=kpi_id,
        total_value=sum(c.value for c in completions),
        total_claims=len(completions),
        evidence_count=total_evidence,
        evidence_percentage=_mean_percent([c.completion_percent for c in completions]),
        evidence_types=[
            EvidenceTypeCount(
                type=evidence_type,
                count=count,
                percentage=round_half_up(Fraction(count * 100, total_evidence)),
                label=_type_label(evidence_type),
            )
            for evidence_type, count in counts.items()
        ],
        claims=completions,
    )

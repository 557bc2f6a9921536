"""Storage accounting: per-organization running total of evidence file bytes.

Tracking only: no limits are enforced. Crossing a soft threshold is logged.
"""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import func
from sqlalchemy.orm import Session

from impacttrace.models import Evidence, EvidenceFile, Initiative, Organization
from impacttrace.schemas.storage import StorageUsage

logger = logging.getLogger(__name__)

GB = 1024 * 1024 * 1024

SOFT_WARNING_THRESHOLDS = (
    (80 * GB, "80 GB"),
    (150 * GB, "150 GB"),
    (200 * GB, "200 GB"),
)

# Display ceiling for usage percentages until plans carry real limits
PLACEHOLDER_MAX_STORAGE_BYTES = 250 * GB


def get_usage(db: Session, organization_id: uuid.UUID) -> StorageUsage | None:
    """Storage usage of one organization, or None if it does not exist."""
    org = db.query(Organization).filter(Organization.id == organization_id).first()
    if org is None:
        return None
    used = org.storage_used_bytes or 0
    return StorageUsage(
        storage_used_bytes=used,
        used_gb=round(used / GB, 2),
        used_percentage=round(used / PLACEHOLDER_MAX_STORAGE_BYTES * 100, 2),
    )


def organization_id_for_initiative(db: Session, initiative_id: uuid.UUID | None) -> uuid.UUID | None:
    if initiative_id is None:
        return None
    return (
        db.query(Initiative.organization_id).filter(Initiative.id == initiative_id).scalar()
    )


def increment_storage(db: Session, organization_id: uuid.UUID, num_bytes: int) -> int | None:
    """Add num_bytes to the organization's counter. Returns the new total, or None if no such org."""
    org = db.query(Organization).filter(Organization.id == organization_id).first()
    if org is None:
        logger.warning("Storage increment skipped: organization %s not found", organization_id)
        return None
    before = org.storage_used_bytes or 0
    org.storage_used_bytes = before + max(0, num_bytes)
    db.commit()
    _log_soft_warnings(org.name or str(organization_id), before, org.storage_used_bytes)
    return org.storage_used_bytes


def decrement_storage(db: Session, organization_id: uuid.UUID, num_bytes: int) -> int | None:
    """Subtract num_bytes from the organization's counter, never going below zero.

    Returns the new total, or None if the organization does not exist.
    """
    org = db.query(Organization).filter(Organization.id == organization_id).first()
    if org is None:
        logger.warning("Storage decrement skipped: organization %s not found", organization_id)
        return None
    org.storage_used_bytes = max(0, (org.storage_used_bytes or 0) - max(0, num_bytes))
    db.commit()
    return org.storage_used_bytes


def recalculate_storage(db: Session, organization_id: uuid.UUID) -> int | None:
    """Recompute the counter from the evidence_files of the organization's initiatives."""
    org = db.query(Organization).filter(Organization.id == organization_id).first()
    if org is None:
        return None
    total = (
        db.query(func.coalesce(func.sum(EvidenceFile.file_size), 0))
        .join(Evidence, Evidence.id == EvidenceFile.evidence_id)
        .join(Initiative, Initiative.id == Evidence.initiative_id)
        .filter(Initiative.organization_id == organization_id)
        .scalar()
    )
    if total != org.storage_used_bytes:
        logger.info(
            "Storage for organization %s corrected: %s -> %s bytes",
            organization_id,
            org.storage_used_bytes,
            total,
        )
    org.storage_used_bytes = int(total)
    db.commit()
    return org.storage_used_bytes


def _log_soft_warnings(org_label: str, before: int, after: int) -> None:
    for threshold, label in SOFT_WARNING_THRESHOLDS:
        if before < threshold <= after:
            logger.warning("Organization %s crossed %s of evidence storage", org_label, label)

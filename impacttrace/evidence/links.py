"""Link Consistency Manager: evidence writes and their KPI / claim / location / file links.

Link tables are reconciled by delete-all-then-insert scoped to one evidence id.
On create and update each link type is written in its own savepoint, so one
failing link type is reported in EvidenceWriteResult.failed_links without
losing the evidence row or the other link types. Delete is all-or-nothing for
rows; removing stored files and storage accounting afterwards is best effort.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from datetime import UTC, datetime

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from impacttrace.evidence.link_change import LinkChange, LinkType
from impacttrace.evidence.repository import to_evidence_reads
from impacttrace.matching.interval import interval_to_fields
from impacttrace.models import (
    Evidence,
    EvidenceFile,
    EvidenceKPI,
    EvidenceKPIUpdate,
    EvidenceLocation,
)
from impacttrace.schemas.evidence import (
    EvidenceCreate,
    EvidenceDeleteResult,
    EvidenceUpdate,
    EvidenceWriteResult,
)
from impacttrace.services.storage_service import (
    decrement_storage,
    organization_id_for_initiative,
)
from impacttrace.storage.file_store import (
    FileStore,
    FileStoreError,
    file_name_from_url,
    file_type_from_url,
)

logger = logging.getLogger(__name__)

_JUNCTIONS = {
    LinkType.KPI: (EvidenceKPI, "kpi_id"),
    LinkType.CLAIM: (EvidenceKPIUpdate, "kpi_update_id"),
    LinkType.LOCATION: (EvidenceLocation, "location_id"),
}


class EvidenceNotFoundError(LookupError):
    """Raised when evidence does not exist or belongs to another user."""

    pass


class EvidenceConflictError(ValueError):
    """Raised when an update's expected_updated_at no longer matches the stored row."""

    pass


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _get_owned(db: Session, evidence_id: uuid.UUID, user_id: uuid.UUID) -> Evidence:
    row = (
        db.query(Evidence)
        .filter(Evidence.id == evidence_id, Evidence.user_id == user_id)
        .first()
    )
    if row is None:
        raise EvidenceNotFoundError(f"Evidence {evidence_id} not found")
    return row


def replace_links(
    db: Session,
    evidence_id: uuid.UUID,
    link_type: LinkType,
    ids: Iterable[uuid.UUID],
    user_id: uuid.UUID | None = None,
) -> int:
    """Delete every link of link_type for evidence_id, then insert ids.

    Flushes but does not commit. Returns the number of rows inserted.
    """
    model, column = _JUNCTIONS[link_type]
    db.query(model).filter(model.evidence_id == evidence_id).delete(synchronize_session=False)
    unique = list(dict.fromkeys(ids))
    for linked_id in unique:
        row = model(evidence_id=evidence_id, **{column: linked_id})
        if user_id is not None and hasattr(model, "user_id"):
            row.user_id = user_id
        db.add(row)
    db.flush()
    return len(unique)


def _insert_files(
    db: Session,
    evidence_id: uuid.UUID,
    file_urls: list[str],
    file_sizes: list[int],
    start: int = 0,
) -> int:
    for index, url in enumerate(file_urls):
        db.add(
            EvidenceFile(
                evidence_id=evidence_id,
                file_url=url,
                file_name=file_name_from_url(url, default=f"file-{start + index + 1}"),
                file_type=file_type_from_url(url),
                file_size=file_sizes[index] if index < len(file_sizes) else 0,
                display_order=start + index,
            )
        )
    db.flush()
    return len(file_urls)


def _append_files(db: Session, row: Evidence, file_urls: list[str], file_sizes: list[int]) -> int:
    """Add file rows after the existing ones.

    Evidence that only has a legacy file_url gets a row for it first so the
    legacy file stays listed next to the new ones.
    """
    last = (
        db.query(func.max(EvidenceFile.display_order))
        .filter(EvidenceFile.evidence_id == row.id)
        .scalar()
    )
    start = 0 if last is None else last + 1
    if last is None and row.file_url and row.file_url not in file_urls:
        _insert_files(db, row.id, [row.file_url], [])
        start = 1
    return _insert_files(db, row.id, file_urls, file_sizes, start=start)


def _remove_file_rows(db: Session, evidence_id: uuid.UUID, file_url: str) -> int:
    """Delete the evidence's file rows for file_url; returns the bytes they accounted for."""
    sizes = (
        db.query(EvidenceFile.file_size)
        .filter(EvidenceFile.evidence_id == evidence_id, EvidenceFile.file_url == file_url)
        .all()
    )
    if not sizes:
        return 0
    db.query(EvidenceFile).filter(
        EvidenceFile.evidence_id == evidence_id, EvidenceFile.file_url == file_url
    ).delete(synchronize_session=False)
    return sum(size or 0 for (size,) in sizes)


def _release_storage(db: Session, initiative_id: uuid.UUID | None, num_bytes: int) -> int:
    """Decrement the owning organization's counter after a commit.

    Returns the bytes released; failures are logged, never raised.
    """
    if num_bytes <= 0:
        return 0
    try:
        organization_id = organization_id_for_initiative(db, initiative_id)
        if organization_id is None or decrement_storage(db, organization_id, num_bytes) is None:
            logger.warning("No organization to release %d bytes from", num_bytes)
            return 0
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("Storage decrement of %d bytes failed: %s", num_bytes, exc)
        return 0
    return num_bytes


def _write_link_changes(
    db: Session,
    evidence_id: uuid.UUID,
    changes: dict[LinkType, LinkChange],
    user_id: uuid.UUID,
) -> dict[LinkType, str]:
    """Apply each non-omit change in its own savepoint; returns the failures by link type."""
    failed: dict[LinkType, str] = {}
    for link_type, change in changes.items():
        if change.is_omit:
            continue
        try:
            with db.begin_nested():
                replace_links(db, evidence_id, link_type, change.ids, user_id)
        except SQLAlchemyError as exc:
            logger.warning(
                "Failed to write %s links for evidence %s: %s", link_type.value, evidence_id, exc
            )
            failed[link_type] = str(getattr(exc, "orig", None) or exc)
    return failed


def create_evidence(db: Session, payload: EvidenceCreate, user_id: uuid.UUID) -> EvidenceWriteResult:
    """Insert evidence plus its links and file rows.

    The legacy file_url column gets the first uploaded file when not given
    explicitly. Link and file failures are logged and returned in
    failed_links; the evidence row is kept either way.
    """
    file_url = payload.file_url or (payload.file_urls[0] if payload.file_urls else None)
    row = Evidence(
        initiative_id=payload.initiative_id,
        user_id=user_id,
        type=payload.type.value,
        title=payload.title,
        description=payload.description,
        file_url=file_url,
        file_type=payload.file_type,
        **interval_to_fields(payload.interval),
    )
    db.add(row)
    db.flush()

    changes = {
        LinkType.KPI: LinkChange.replace(payload.kpi_ids),
        LinkType.CLAIM: LinkChange.replace(payload.claim_ids),
        LinkType.LOCATION: LinkChange.replace(payload.location_ids),
    }
    # nothing to delete on a fresh row; an empty list needs no statement at all
    changes = {k: v for k, v in changes.items() if v.kind == "replace"}
    failed = _write_link_changes(db, row.id, changes, user_id)

    if payload.file_urls:
        try:
            with db.begin_nested():
                _insert_files(db, row.id, payload.file_urls, payload.file_sizes)
        except SQLAlchemyError as exc:
            logger.warning("Failed to insert files for evidence %s: %s", row.id, exc)
            failed[LinkType.FILE] = str(getattr(exc, "orig", None) or exc)

    db.commit()
    db.refresh(row)
    if failed:
        logger.warning(
            "Evidence %s created with failed links: %s",
            row.id,
            ", ".join(t.value for t in failed),
        )
    else:
        logger.info("Evidence %s created", row.id)
    return EvidenceWriteResult(evidence=to_evidence_reads(db, [row])[0], failed_links=failed)


async def update_evidence(
    db: Session,
    evidence_id: uuid.UUID,
    payload: EvidenceUpdate,
    user_id: uuid.UUID,
    file_store: FileStore | None = None,
) -> EvidenceWriteResult:
    """Apply a partial update.

    Scalar fields and dates present in the payload overwrite the row. Each link
    field present in the payload replaces that link set ([] clears it); absent
    link fields are left alone. file_urls are appended as new file rows.

    When file_url changes (or is cleared), file rows for the old URL are
    dropped and their bytes released, and the old file is removed from the
    store after the commit.
    """
    row = _get_owned(db, evidence_id, user_id)
    if payload.expected_updated_at is not None and _as_utc(row.updated_at) != _as_utc(
        payload.expected_updated_at
    ):
        raise EvidenceConflictError(f"Evidence {evidence_id} was modified by someone else")

    old_file_url = row.file_url
    for name, value in payload.scalar_changes().items():
        setattr(row, name, value)
    interval = payload.interval()
    if interval is not None:
        for name, value in interval_to_fields(interval).items():
            setattr(row, name, value)
    row.updated_at = datetime.now(UTC)
    db.flush()

    replaced_url = None
    replaced_bytes = 0
    if old_file_url and row.file_url != old_file_url and old_file_url not in payload.file_urls:
        replaced_url = old_file_url
        replaced_bytes = _remove_file_rows(db, row.id, old_file_url)

    failed = _write_link_changes(db, row.id, payload.link_changes(), user_id)

    if payload.file_urls:
        try:
            with db.begin_nested():
                _append_files(db, row, payload.file_urls, payload.file_sizes)
        except SQLAlchemyError as exc:
            logger.warning("Failed to add files to evidence %s: %s", row.id, exc)
            failed[LinkType.FILE] = str(getattr(exc, "orig", None) or exc)

    db.commit()
    db.refresh(row)

    if replaced_url is not None:
        if file_store is not None:
            try:
                await file_store.delete(replaced_url)
            except FileStoreError:
                logger.exception("Could not delete replaced file %s", replaced_url)
        _release_storage(db, row.initiative_id, replaced_bytes)

    if failed:
        logger.warning(
            "Evidence %s updated with failed links: %s",
            row.id,
            ", ".join(t.value for t in failed),
        )
    else:
        logger.info("Evidence %s updated", row.id)
    return EvidenceWriteResult(evidence=to_evidence_reads(db, [row])[0], failed_links=failed)


async def delete_evidence(
    db: Session,
    evidence_id: uuid.UUID,
    user_id: uuid.UUID,
    file_store: FileStore | None = None,
) -> EvidenceDeleteResult:
    """Delete evidence with all its link and file rows, then release its stored files.

    Row deletion is one transaction: any failure rolls back and raises. Removing
    stored files and decrementing the organization's storage counter happen
    after the commit; their failures end up in the result's warnings.
    """
    row = _get_owned(db, evidence_id, user_id)
    initiative_id = row.initiative_id
    legacy_url = row.file_url
    files = (
        db.query(EvidenceFile.file_url, EvidenceFile.file_size)
        .filter(EvidenceFile.evidence_id == evidence_id)
        .order_by(EvidenceFile.display_order.asc())
        .all()
    )
    total_bytes = sum(size or 0 for _, size in files)

    try:
        counts = {}
        for link_type, (model, _) in _JUNCTIONS.items():
            counts[link_type] = (
                db.query(model)
                .filter(model.evidence_id == evidence_id)
                .delete(synchronize_session=False)
            )
        file_rows = (
            db.query(EvidenceFile)
            .filter(EvidenceFile.evidence_id == evidence_id)
            .delete(synchronize_session=False)
        )
        db.delete(row)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to delete evidence %s", evidence_id)
        raise

    result = EvidenceDeleteResult(
        evidence_id=evidence_id,
        kpi_links=counts[LinkType.KPI],
        claim_links=counts[LinkType.CLAIM],
        location_links=counts[LinkType.LOCATION],
        files=file_rows,
    )
    logger.info(
        "Evidence %s deleted (%d KPI, %d claim, %d location links, %d files)",
        evidence_id,
        result.kpi_links,
        result.claim_links,
        result.location_links,
        result.files,
    )

    if file_store is not None:
        urls = list(dict.fromkeys([url for url, _ in files] + ([legacy_url] if legacy_url else [])))
        for url in urls:
            try:
                await file_store.delete(url)
            except FileStoreError as exc:
                logger.warning("Could not delete stored file %s: %s", url, exc)
                result.warnings.append(f"file not deleted: {url}")

    if total_bytes > 0:
        try:
            organization_id = organization_id_for_initiative(db, initiative_id)
            if organization_id is None:
                result.warnings.append("no organization to release storage from")
            elif decrement_storage(db, organization_id, total_bytes) is not None:
                result.bytes_released = total_bytes
            else:
                result.warnings.append(f"organization {organization_id} not found")
        except SQLAlchemyError as exc:
            db.rollback()
            logger.warning("Storage decrement failed for evidence %s: %s", evidence_id, exc)
            result.warnings.append("storage usage not decremented")

    return result

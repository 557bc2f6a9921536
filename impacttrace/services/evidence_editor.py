"""Evidence editor: one create-or-edit session for a piece of evidence.

Holds the KPI, location and claim selections, re-runs claim matching as dates,
KPIs or locations change, and on submit uploads pending files and hands the
payload to the link manager. On edit, link fields the user never touched are
left out of the payload so their stored links stay as they are.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date

from sqlalchemy.orm import Session

from impacttrace.evidence import links
from impacttrace.evidence.link_change import LinkChange
from impacttrace.matching.coverage import average_coverage
from impacttrace.matching.interval import DateRange, Interval, SingleDay, interval_to_fields
from impacttrace.matching.matcher import ClaimFetcher, fetch_matches
from impacttrace.matching.selection import ClaimSelection, SelectionDelta, TrackedSelection
from impacttrace.matching.session import MatchingSession
from impacttrace.schemas.claim import KpiRead, LocationRead
from impacttrace.schemas.evidence import (
    EvidenceCreate,
    EvidenceRead,
    EvidenceType,
    EvidenceUpdate,
    EvidenceWriteResult,
)
from impacttrace.schemas.matching import MatchQuery, MatchResult
from impacttrace.services.claim_service import claims_fetcher
from impacttrace.services.storage_service import increment_storage, organization_id_for_initiative
from impacttrace.storage.file_store import FileStore

logger = logging.getLogger(__name__)


@dataclass
class PendingFile:
    name: str
    content: bytes
    content_type: str


class EvidenceEditor:
    """Authoring session for new evidence or for editing an existing item."""

    def __init__(
        self,
        user_id: uuid.UUID,
        initiative_id: uuid.UUID | None,
        *,
        fetch_claims: ClaimFetcher,
        kpis: Iterable[KpiRead] = (),
        locations: Iterable[LocationRead] = (),
        evidence: EvidenceRead | None = None,
        file_store: FileStore | None = None,
        debounce_seconds: float | None = None,
    ) -> None:
        self.user_id = user_id
        self.initiative_id = initiative_id
        self.kpis = list(kpis)
        self.locations = list(locations)
        self.evidence = evidence
        self.file_store = file_store
        self._fetch_claims = fetch_claims

        existing = evidence is not None
        self.kpi_selection = TrackedSelection(evidence.kpi_ids if existing else (), existing=existing)
        self.location_selection = TrackedSelection(
            evidence.location_ids if existing else (), existing=existing
        )
        self.interval: Interval | None = evidence.interval if existing else None
        self.claim_selection = (
            ClaimSelection.for_existing(evidence.claim_ids, baseline_query=self.query())
            if existing
            else ClaimSelection.for_new()
        )
        self.title = evidence.title if existing else ""
        self.description = evidence.description if existing else None
        self.type: EvidenceType | None = evidence.type if existing else None
        self.pending_files: list[PendingFile] = []
        self.dropped_claim_ids: tuple[uuid.UUID, ...] = ()

        self.matching = MatchingSession(
            self._match,
            self.claim_selection,
            debounce_seconds=debounce_seconds,
            on_result=self._on_result,
        )

    @classmethod
    def for_new(
        cls,
        session_factory: Callable[[], Session],
        user_id: uuid.UUID,
        initiative_id: uuid.UUID | None,
        **kwargs,
    ) -> EvidenceEditor:
        return cls(user_id, initiative_id, fetch_claims=claims_fetcher(session_factory, user_id), **kwargs)

    @classmethod
    def for_existing(
        cls,
        session_factory: Callable[[], Session],
        user_id: uuid.UUID,
        evidence: EvidenceRead,
        **kwargs,
    ) -> EvidenceEditor:
        return cls(
            user_id,
            evidence.initiative_id,
            fetch_claims=claims_fetcher(session_factory, user_id),
            evidence=evidence,
            **kwargs,
        )

    @property
    def is_edit(self) -> bool:
        return self.evidence is not None

    @property
    def result(self) -> MatchResult | None:
        return self.matching.result

    @property
    def average_coverage(self) -> int:
        """Mean coverage over the currently selected matching claims."""
        if self.result is None:
            return 0
        return average_coverage(self.result.coverage_by_claim(), self.claim_selection.selected)

    def query(self) -> MatchQuery | None:
        """Current matching inputs, or None while there is no KPI or no date.

        A single selected location narrows the match to that location.
        """
        kpi_ids = self.kpi_selection.selected
        if not kpi_ids or self.interval is None:
            return None
        locations = self.location_selection.selected
        return MatchQuery(
            kpi_ids=tuple(kpi_ids),
            interval=self.interval,
            location_id=locations[0] if len(locations) == 1 else None,
        )

    def refresh_matches(self) -> None:
        self.matching.request(self.query())

    async def _match(self, query: MatchQuery) -> MatchResult:
        return await fetch_matches(query, self._fetch_claims, self.kpis, self.locations)

    def _on_result(self, result: MatchResult, delta: SelectionDelta | None) -> None:
        self.dropped_claim_ids = delta.dropped if delta is not None else ()
        if self.dropped_claim_ids:
            logger.info(
                "%d selected claim(s) no longer match and were deselected", len(self.dropped_claim_ids)
            )

    # Inputs that change what matches

    def set_single_date(self, day: date) -> None:
        self.interval = SingleDay(day)
        self.refresh_matches()

    def set_date_range(self, start: date, end: date) -> None:
        self.interval = DateRange(start, end)
        self.refresh_matches()

    def clear_dates(self) -> None:
        self.interval = None
        self.refresh_matches()

    def toggle_kpi(self, kpi_id: uuid.UUID) -> bool:
        selected = self.kpi_selection.toggle(kpi_id)
        self.refresh_matches()
        return selected

    def set_kpis(self, kpi_ids: Iterable[uuid.UUID]) -> None:
        self.kpi_selection.set(kpi_ids)
        self.refresh_matches()

    def toggle_location(self, location_id: uuid.UUID) -> bool:
        selected = self.location_selection.toggle(location_id)
        self.refresh_matches()
        return selected

    def add_file(self, name: str, content: bytes, content_type: str) -> None:
        self.pending_files.append(PendingFile(name, content, content_type))

    # Submission

    async def _upload_pending(self, db: Session) -> tuple[list[str], list[int]]:
        if not self.pending_files:
            return [], []
        if self.file_store is None:
            raise RuntimeError("Files were added but no file store is configured")
        urls: list[str] = []
        sizes: list[int] = []
        for pending in self.pending_files:
            stored = await self.file_store.upload(pending.name, pending.content, pending.content_type)
            urls.append(stored.url)
            sizes.append(stored.size)
        self.pending_files.clear()

        organization_id = organization_id_for_initiative(db, self.initiative_id)
        if organization_id is not None:
            increment_storage(db, organization_id, sum(sizes))
        return urls, sizes

    def _link_fields(self) -> dict[str, list[uuid.UUID]]:
        fields = {}
        for name, selection in (
            ("kpi_ids", self.kpi_selection),
            ("claim_ids", self.claim_selection),
            ("location_ids", self.location_selection),
        ):
            change: LinkChange = selection.link_change()
            if not change.is_omit:
                fields[name] = list(change.ids)
        return fields

    async def submit(self, db: Session) -> EvidenceWriteResult:
        """Wait for matching to settle, upload files, then create or update the evidence.

        The payload is validated before anything is uploaded. On edit, new
        uploads are appended to the item's files; the legacy file_url is only
        filled in when the item has none.
        """
        if self.interval is None:
            raise ValueError("A date or a date range is required")
        await self.matching.wait_idle()

        data = {
            "title": self.title,
            "description": self.description,
            "type": self.type,
            **interval_to_fields(self.interval),
            **self._link_fields(),
        }
        if self.is_edit:
            EvidenceUpdate.model_validate(data)
        else:
            data["initiative_id"] = self.initiative_id
            EvidenceCreate.model_validate(data)

        file_urls, file_sizes = await self._upload_pending(db)
        data.update(file_urls=file_urls, file_sizes=file_sizes)
        if self.is_edit:
            if file_urls and self.evidence.file_url is None:
                data["file_url"] = file_urls[0]
            result = await links.update_evidence(
                db,
                self.evidence.id,
                EvidenceUpdate.model_validate(data),
                self.user_id,
                self.file_store,
            )
        else:
            result = links.create_evidence(db, EvidenceCreate.model_validate(data), self.user_id)

        if result.partial:
            logger.warning(
                "Evidence %s saved without %s links",
                result.evidence.id,
                ", ".join(t.value for t in result.failed_links),
            )
        return result

    def close(self) -> None:
        self.matching.close()

"""Claim matcher: which claims of the selected KPIs a piece of evidence can support.

Matching is re-derived from scratch on every call; nothing is cached between
queries. match_claims is pure; fetch_matches loads candidate claims through an
injected async fetcher and degrades per KPI on fetch errors.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable, Iterable, Sequence

from impacttrace.matching.coverage import coverage_percent
from impacttrace.matching.interval import overlaps
from impacttrace.schemas.claim import ClaimRead, KpiRead, LocationRead
from impacttrace.schemas.matching import (
    KpiMatch,
    MatchedClaim,
    MatchQuery,
    MatchResult,
    MatchWarning,
)

logger = logging.getLogger(__name__)

ClaimFetcher = Callable[[uuid.UUID], Awaitable[Sequence[ClaimRead]]]


def _claim_matches(claim: ClaimRead, query: MatchQuery) -> bool:
    if query.location_id is not None and claim.location_id != query.location_id:
        return False
    return overlaps(claim.interval, query.interval)


def match_claims(
    claims: Iterable[ClaimRead],
    query: MatchQuery,
    kpis: Iterable[KpiRead] = (),
    locations: Iterable[LocationRead] = (),
    warnings: Iterable[MatchWarning] = (),
) -> MatchResult:
    """Filter claims by location and date overlap, then group them per KPI.

    KPIs appear in query.kpi_ids order; claims keep their input order. KPIs
    without a surviving claim are left out. Claims of KPIs not in the query
    are ignored.
    """
    kpi_by_id = {kpi.id: kpi for kpi in kpis}
    location_names = {location.id: location.name for location in locations}
    wanted = dict.fromkeys(query.kpi_ids)

    grouped: dict[uuid.UUID, list[MatchedClaim]] = {kpi_id: [] for kpi_id in wanted}
    for claim in claims:
        if claim.kpi_id not in grouped or not _claim_matches(claim, query):
            continue
        kpi = kpi_by_id.get(claim.kpi_id)
        grouped[claim.kpi_id].append(
            MatchedClaim(
                **claim.model_dump(),
                kpi_title=kpi.title if kpi else None,
                kpi_unit=kpi.unit_of_measurement if kpi else None,
                location_name=location_names.get(claim.location_id) if claim.location_id else None,
                coverage_percent=coverage_percent(claim.interval, query.interval),
            )
        )

    per_kpi = []
    for kpi_id, matched in grouped.items():
        if not matched:
            continue
        kpi = kpi_by_id.get(kpi_id)
        per_kpi.append(
            KpiMatch(
                kpi_id=kpi_id,
                kpi_title=kpi.title if kpi else None,
                kpi_unit=kpi.unit_of_measurement if kpi else None,
                total=sum(c.value for c in matched),
                claims=matched,
            )
        )
    return MatchResult(query=query, per_kpi=per_kpi, warnings=list(warnings))


async def fetch_matches(
    query: MatchQuery,
    fetch_claims_for_kpi: ClaimFetcher,
    kpis: Iterable[KpiRead] = (),
    locations: Iterable[LocationRead] = (),
) -> MatchResult:
    """Load each selected KPI's claims concurrently and match them against query.

    A KPI whose fetch raises contributes no claims and a MatchWarning; the
    other KPIs are still matched.
    """
    kpi_ids = list(dict.fromkeys(query.kpi_ids))
    if not kpi_ids:
        return MatchResult(query=query)

    results = await asyncio.gather(
        *(fetch_claims_for_kpi(kpi_id) for kpi_id in kpi_ids),
        return_exceptions=True,
    )

    claims: list[ClaimRead] = []
    warnings: list[MatchWarning] = []
    for kpi_id, result in zip(kpi_ids, results):
        if isinstance(result, BaseException):
            if not isinstance(result, Exception):
                raise result
            logger.warning("Claim fetch failed for KPI %s: %s", kpi_id, result)
            warnings.append(MatchWarning(kpi_id=kpi_id, message=str(result) or type(result).__name__))
            continue
        claims.extend(claim for claim in result if claim.kpi_id == kpi_id)

    return match_claims(claims, query, kpis=kpis, locations=locations, warnings=warnings)

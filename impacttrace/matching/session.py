"""Per-editing-session matching: debounced, single-flight, stale results dropped.

Every edit calls request(query). Edits inside the debounce window collapse
into one pass on the latest query. While a pass is in flight no second pass
starts; when it finishes, a newer query (if any) is run next. A result whose
query is no longer the latest is discarded rather than applied. In-flight
fetches are never cancelled, only ignored.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from impacttrace.config import get_settings
from impacttrace.matching.selection import ClaimSelection, SelectionDelta
from impacttrace.schemas.matching import MatchQuery, MatchResult

logger = logging.getLogger(__name__)

Matcher = Callable[[MatchQuery], Awaitable[MatchResult]]
ResultCallback = Callable[[MatchResult, SelectionDelta | None], None]


class MatchingSession:
    """Runs matching passes for one evidence editor and applies fresh results."""

    def __init__(
        self,
        matcher: Matcher,
        selection: ClaimSelection | None = None,
        *,
        debounce_seconds: float | None = None,
        on_result: ResultCallback | None = None,
    ) -> None:
        self._matcher = matcher
        self.selection = selection
        self._debounce = (
            get_settings().match_debounce_seconds if debounce_seconds is None else debounce_seconds
        )
        self._on_result = on_result
        self._latest: MatchQuery | None = None
        self._timer: asyncio.Task | None = None
        self._runner: asyncio.Task | None = None
        self.result: MatchResult | None = None
        self.passes = 0
        self.stale_dropped = 0
        self.error: BaseException | None = None

    @property
    def latest_query(self) -> MatchQuery | None:
        return self._latest

    @property
    def in_flight(self) -> bool:
        return self._runner is not None and not self._runner.done()

    def request(self, query: MatchQuery | None) -> None:
        """Record the newest inputs and (re)start the debounce timer.

        None means the inputs are incomplete (no KPI or no date); the current
        result is cleared and nothing is fetched.
        """
        self._latest = query
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        if query is None or not query.kpi_ids:
            self.result = None
            self._timer = None
            return
        self._timer = asyncio.get_running_loop().create_task(self._debounced())

    async def _debounced(self) -> None:
        await asyncio.sleep(self._debounce)
        if self.in_flight:
            # the running pass picks up the latest query when it finishes
            return
        self._runner = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while True:
            query = self._latest
            if query is None or not query.kpi_ids:
                return
            self.passes += 1
            try:
                result = await self._matcher(query)
            except Exception as exc:
                logger.exception("Matching pass failed")
                self.error = exc
                result = None
            if result is not None:
                self._apply(result)
            if self._latest == query or self._timer_pending():
                return

    def _timer_pending(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def _apply(self, result: MatchResult) -> None:
        if result.query != self._latest:
            self.stale_dropped += 1
            logger.debug("Dropping stale match result for %s", result.query)
            return
        self.error = None
        self.result = result
        delta = None
        if self.selection is not None:
            delta = self.selection.apply_matches(result.claim_ids, query=result.query)
        if self._on_result is not None:
            self._on_result(result, delta)

    async def wait_idle(self) -> None:
        """Wait until no debounce timer or pass is outstanding."""
        while True:
            pending = [t for t in (self._timer, self._runner) if t is not None and not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def close(self) -> None:
        """Cancel the pending debounce timer; an in-flight pass is left to finish."""
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()

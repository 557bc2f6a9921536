"""Selection state for the ids an evidence item will be linked to.

TrackedSelection remembers the selection it started from so an edit that
never touched a link type can leave that type's persisted links alone.
ClaimSelection adds the rules for reconciling the selected claims with a
changing set of matches.
"""

from __future__ import annotations

import uuid
from collections.abc import Hashable, Iterable
from dataclasses import dataclass

from impacttrace.evidence.link_change import LinkChange


@dataclass(frozen=True)
class SelectionDelta:
    """Effect of applying one match result to a selection."""

    kept: tuple[uuid.UUID, ...]
    dropped: tuple[uuid.UUID, ...]
    added: tuple[uuid.UUID, ...] = ()


class TrackedSelection:
    """Ordered set of selected ids plus the snapshot it was loaded with."""

    def __init__(self, initial: Iterable[uuid.UUID] = (), *, existing: bool = False) -> None:
        self._selected: dict[uuid.UUID, None] = dict.fromkeys(initial)
        self._initial = frozenset(self._selected)
        self.existing = existing

    @property
    def selected(self) -> list[uuid.UUID]:
        return list(self._selected)

    @property
    def initial(self) -> frozenset[uuid.UUID]:
        return self._initial

    @property
    def changed(self) -> bool:
        """Whether the selection differs, as a set, from what was loaded."""
        return frozenset(self._selected) != self._initial

    def __contains__(self, item: object) -> bool:
        return item in self._selected

    def __len__(self) -> int:
        return len(self._selected)

    def select(self, item: uuid.UUID) -> None:
        self._selected.setdefault(item, None)

    def deselect(self, item: uuid.UUID) -> None:
        self._selected.pop(item, None)

    def toggle(self, item: uuid.UUID) -> bool:
        """Flip item; returns True when it ends up selected."""
        if item in self._selected:
            self.deselect(item)
            return False
        self.select(item)
        return True

    def set(self, items: Iterable[uuid.UUID]) -> None:
        self._selected = dict.fromkeys(items)

    def select_all(self, items: Iterable[uuid.UUID]) -> None:
        for item in items:
            self.select(item)

    def clear(self) -> None:
        self._selected.clear()

    def link_change(self) -> LinkChange:
        """Link field for submission: always sent for new items, only when changed on edit."""
        if self.existing and not self.changed:
            return LinkChange.omit()
        return LinkChange.replace(self._selected)


class ClaimSelection(TrackedSelection):
    """Selected claims for an evidence item being created or edited.

    New item: the first successful match selects every match; later matches
    only narrow the selection. Existing item: starts from the persisted links;
    a match for the persisted query (KPIs, dates, location as loaded) is the
    baseline and drops nothing. A match for any other query narrows.
    """

    def __init__(
        self,
        initial: Iterable[uuid.UUID] = (),
        *,
        existing: bool = False,
        baseline_query: Hashable | None = None,
    ) -> None:
        super().__init__(initial, existing=existing)
        self.user_has_chosen = False
        self.baseline_query = baseline_query
        self._baseline_pending = existing

    @classmethod
    def for_new(cls) -> ClaimSelection:
        return cls()

    @classmethod
    def for_existing(
        cls, persisted_ids: Iterable[uuid.UUID], baseline_query: Hashable | None = None
    ) -> ClaimSelection:
        return cls(persisted_ids, existing=True, baseline_query=baseline_query)

    def _is_baseline(self, query: Hashable | None) -> bool:
        if not self._baseline_pending:
            return False
        if self.baseline_query is None or query is None or query == self.baseline_query:
            return True
        # inputs changed before the first match landed
        self._baseline_pending = False
        self.user_has_chosen = True
        return False

    def apply_matches(
        self, matching_ids: Iterable[uuid.UUID], query: Hashable | None = None
    ) -> SelectionDelta:
        """Reconcile the selection with the ids of a fresh match result.

        query is the input the result answers; it decides whether an existing
        item's pending baseline applies.
        """
        matching = list(dict.fromkeys(matching_ids))

        if self._is_baseline(query):
            self._baseline_pending = False
            self.user_has_chosen = True
            return SelectionDelta(kept=tuple(self._selected), dropped=())

        if not self.existing and not self.user_has_chosen:
            if not matching:
                # nothing matched yet; keep waiting for the first real match
                return SelectionDelta(kept=tuple(self._selected), dropped=())
            self.set(matching)
            self.user_has_chosen = True
            return SelectionDelta(kept=(), dropped=(), added=tuple(matching))

        present = set(matching)
        kept = tuple(item for item in self._selected if item in present)
        dropped = tuple(item for item in self._selected if item not in present)
        self.set(kept)
        return SelectionDelta(kept=kept, dropped=dropped)

    def select(self, item: uuid.UUID) -> None:
        self.user_has_chosen = True
        super().select(item)

    def deselect(self, item: uuid.UUID) -> None:
        self.user_has_chosen = True
        super().deselect(item)

    def select_all(self, items: Iterable[uuid.UUID]) -> None:
        self.user_has_chosen = True
        super().select_all(items)

    def clear(self) -> None:
        self.user_has_chosen = True
        super().clear()

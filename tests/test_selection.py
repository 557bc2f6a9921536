"""Tests for selection preservation across re-matches."""

from __future__ import annotations

import uuid

from impacttrace.matching.selection import ClaimSelection, TrackedSelection


def _ids(n: int) -> list[uuid.UUID]:
    return [uuid.uuid4() for _ in range(n)]


class TestNewItem:
    def test_first_match_auto_selects_then_date_change_narrows(self):
        a, b, c = _ids(3)
        selection = ClaimSelection.for_new()

        first = selection.apply_matches([a, b, c])
        assert selection.selected == [a, b, c]
        assert first.added == (a, b, c)

        second = selection.apply_matches([a, c])
        assert selection.selected == [a, c]
        assert second.dropped == (b,)
        assert second.kept == (a, c)

    def test_later_matches_never_auto_add(self):
        a, b = _ids(2)
        selection = ClaimSelection.for_new()
        selection.apply_matches([a])

        selection.apply_matches([a, b])

        assert selection.selected == [a]

    def test_empty_first_match_keeps_waiting(self):
        a = uuid.uuid4()
        selection = ClaimSelection.for_new()

        selection.apply_matches([])
        assert not selection.user_has_chosen

        selection.apply_matches([a])
        assert selection.selected == [a]

    def test_explicit_choice_stops_auto_select(self):
        a, b = _ids(2)
        selection = ClaimSelection.for_new()
        selection.select(a)

        selection.apply_matches([a, b])

        assert selection.selected == [a]

    def test_new_item_always_sends_links(self):
        selection = ClaimSelection.for_new()
        change = selection.link_change()
        assert change.kind == "clear"


class TestExistingItem:
    def test_first_match_is_baseline_and_drops_nothing(self):
        a, b = _ids(2)
        selection = ClaimSelection.for_existing([a, b])

        delta = selection.apply_matches([a])

        assert delta.dropped == ()
        assert selection.selected == [a, b]
        assert selection.link_change().is_omit

    def test_later_rematch_intersects(self):
        a, b = _ids(2)
        selection = ClaimSelection.for_existing([a, b])
        selection.apply_matches([a, b])

        delta = selection.apply_matches([b])

        assert delta.dropped == (a,)
        assert selection.link_change().kind == "replace"
        assert selection.link_change().ids == (b,)

    def test_reordering_is_not_a_change(self):
        a, b = _ids(2)
        selection = ClaimSelection.for_existing([a, b])
        selection.set([b, a])

        assert not selection.changed
        assert selection.link_change().is_omit

    def test_clearing_sends_clear(self):
        a = uuid.uuid4()
        selection = ClaimSelection.for_existing([a])
        selection.clear()

        assert selection.link_change().kind == "clear"

    def test_match_for_a_different_query_is_not_the_baseline(self):
        a, b = _ids(2)
        selection = ClaimSelection.for_existing([a, b], baseline_query="loaded")

        delta = selection.apply_matches([b], query="edited")

        assert delta.dropped == (a,)
        assert selection.link_change().ids == (b,)

    def test_match_for_the_loaded_query_is_the_baseline(self):
        a, b = _ids(2)
        selection = ClaimSelection.for_existing([a, b], baseline_query="loaded")

        assert selection.apply_matches([b], query="loaded").dropped == ()
        assert selection.apply_matches([b], query="loaded").dropped == (a,)


class TestTrackedSelection:
    def test_toggle(self):
        a = uuid.uuid4()
        selection = TrackedSelection()
        assert selection.toggle(a) is True
        assert a in selection
        assert selection.toggle(a) is False
        assert len(selection) == 0

    def test_select_all_keeps_order_without_duplicates(self):
        a, b, c = _ids(3)
        selection = TrackedSelection([b])
        selection.select_all([a, b, c])
        assert selection.selected == [b, a, c]

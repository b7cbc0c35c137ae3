"""Pure LoadingState transitions and their invariants."""

from __future__ import annotations

import pytest

from zaplytics.ingestion import loading_state as ls

UNTIL = 10_000
SINCE = 1_000


def _page(state, *, accepted, page_size, next_cursor):
    return ls.on_page_success(
        ls.on_page_started(state),
        accepted=accepted,
        page_size=page_size,
        next_cursor=next_cursor,
        since=SINCE,
    )


def test_fresh_state():
    state = ls.on_selection_change(500, UNTIL)
    assert state.total_fetched == 0
    assert state.until_cursor == UNTIL
    assert state.can_load_more
    assert state.auto_load_enabled


def test_selection_change_rejects_bad_limit():
    with pytest.raises(ValueError):
        ls.on_selection_change(0, UNTIL)


def test_loading_blocks_load_more():
    state = ls.on_page_started(ls.on_selection_change(500, UNTIL))
    assert state.is_loading
    assert not state.can_load_more


def test_full_page_keeps_going_short_page_completes():
    state = _page(ls.on_selection_change(3, UNTIL), accepted=3, page_size=3, next_cursor=9_000)
    assert not state.is_complete
    assert state.total_fetched == 3
    assert state.until_cursor == 9_000
    state = _page(state, accepted=2, page_size=2, next_cursor=8_000)
    assert state.is_complete
    assert state.total_fetched == 5
    assert state.pages_fetched == 2
    assert not state.can_load_more


def test_complete_never_reverts():
    state = _page(ls.on_selection_change(3, UNTIL), accepted=1, page_size=1, next_cursor=9_000)
    assert state.is_complete
    state = ls.on_page_success(state, accepted=3, page_size=3, next_cursor=8_000, since=SINCE)
    assert state.is_complete


def test_cursor_below_since_completes():
    state = _page(ls.on_selection_change(3, UNTIL), accepted=3, page_size=3, next_cursor=SINCE - 1)
    assert state.is_complete


def test_empty_page_completes():
    state = _page(ls.on_selection_change(3, UNTIL), accepted=0, page_size=0, next_cursor=None)
    assert state.is_complete
    assert state.until_cursor == UNTIL


def test_failure_keeps_totals_and_success_resets_failures():
    state = _page(ls.on_selection_change(3, UNTIL), accepted=3, page_size=3, next_cursor=9_000)
    state = ls.on_page_failure(ls.on_page_started(state), "timeout")
    state = ls.on_page_failure(ls.on_page_started(state), "timeout")
    assert state.consecutive_failures == 2
    assert state.error == "timeout"
    assert state.total_fetched == 3
    assert not state.is_loading
    state = _page(state, accepted=3, page_size=3, next_cursor=8_000)
    assert state.consecutive_failures == 0
    assert state.error is None


def test_trip_breaker_at_threshold():
    state = ls.on_selection_change(3, UNTIL)
    for _ in range(2):
        state = ls.on_page_failure(state, "down")
    assert ls.trip_breaker(state, 3) is state
    state = ls.on_page_failure(state, "down")
    tripped = ls.trip_breaker(state, 3)
    assert tripped.auto_load_enabled is False
    assert tripped.consecutive_failures == 3


def test_restart_and_dismiss():
    state = ls.on_selection_change(3, UNTIL)
    for _ in range(3):
        state = ls.on_page_failure(state, "down")
    state = ls.trip_breaker(state, 3)
    dismissed = ls.dismiss_error(state)
    assert dismissed.error is None
    assert dismissed.consecutive_failures == 3
    restarted = ls.restart_auto_load(state)
    assert restarted.consecutive_failures == 0
    assert restarted.auto_load_enabled
    assert restarted.error is None


def test_discarded_page_releases_loading_flag_only():
    state = ls.on_page_started(ls.on_selection_change(3, UNTIL))
    discarded = ls.on_page_discarded(state)
    assert not discarded.is_loading
    assert discarded.total_fetched == 0
    assert discarded.pages_fetched == 0


def test_to_dict_includes_can_load_more():
    d = ls.on_selection_change(3, UNTIL).to_dict()
    assert d["can_load_more"] is True
    assert d["relay_limit"] == 3

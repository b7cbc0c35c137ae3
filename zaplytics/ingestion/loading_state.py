"""
LoadingState: session state of one fetch session, with pure transitions.

Every transition returns a new frozen LoadingState; nothing mutates in place.
Invariants held by the transitions:
- total_fetched never decreases;
- is_complete never reverts to False;
- can_load_more == (not is_complete and not is_loading).
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any


@dataclass(frozen=True)
class LoadingState:
    relay_limit: int
    total_fetched: int = 0
    is_complete: bool = False
    is_loading: bool = False
    consecutive_failures: int = 0
    auto_load_enabled: bool = True
    error: str | None = None
    pages_fetched: int = 0
    until_cursor: int | None = None

    @property
    def can_load_more(self) -> bool:
        return not self.is_complete and not self.is_loading

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_fetched": self.total_fetched,
            "relay_limit": self.relay_limit,
            "is_complete": self.is_complete,
            "is_loading": self.is_loading,
            "can_load_more": self.can_load_more,
            "consecutive_failures": self.consecutive_failures,
            "auto_load_enabled": self.auto_load_enabled,
            "error": self.error,
            "pages_fetched": self.pages_fetched,
            "until_cursor": self.until_cursor,
        }


def on_selection_change(relay_limit: int, until: int, *, auto_load: bool = True) -> LoadingState:
    """Fresh state for a new (identity, range) selection."""
    if relay_limit < 1:
        raise ValueError("relay_limit must be at least 1")
    return LoadingState(relay_limit=relay_limit, auto_load_enabled=auto_load, until_cursor=until)


def on_page_started(state: LoadingState) -> LoadingState:
    return replace(state, is_loading=True)


def on_page_success(
    state: LoadingState,
    *,
    accepted: int,
    page_size: int,
    next_cursor: int | None,
    since: int,
) -> LoadingState:
    """
    Apply a successful page.

    Complete when the page was short (fewer than relay_limit raw events), the
    cursor can no longer move, or it moved below `since`.
    """
    complete = (
        state.is_complete
        or page_size < state.relay_limit
        or next_cursor is None
        or next_cursor < since
    )
    return replace(
        state,
        total_fetched=state.total_fetched + max(accepted, 0),
        is_complete=complete,
        is_loading=False,
        consecutive_failures=0,
        error=None,
        pages_fetched=state.pages_fetched + 1,
        until_cursor=next_cursor if next_cursor is not None else state.until_cursor,
    )


def on_page_failure(state: LoadingState, error: str) -> LoadingState:
    """Record a failed page; accumulated receipts and completeness are untouched."""
    return replace(
        state,
        is_loading=False,
        consecutive_failures=state.consecutive_failures + 1,
        error=error,
    )


def on_page_discarded(state: LoadingState) -> LoadingState:
    """Release the loading flag without applying anything (superseded session)."""
    return replace(state, is_loading=False)


def with_auto_load(state: LoadingState, enabled: bool) -> LoadingState:
    return replace(state, auto_load_enabled=enabled)


def trip_breaker(state: LoadingState, failure_threshold: int) -> LoadingState:
    """Disable auto-load once consecutive failures reach the threshold."""
    if state.consecutive_failures >= failure_threshold and state.auto_load_enabled:
        return replace(state, auto_load_enabled=False)
    return state


def restart_auto_load(state: LoadingState) -> LoadingState:
    """User recovery from the breaker: failures reset, auto-load re-enabled."""
    return replace(state, consecutive_failures=0, auto_load_enabled=True, error=None)


def dismiss_error(state: LoadingState) -> LoadingState:
    return replace(state, error=None)

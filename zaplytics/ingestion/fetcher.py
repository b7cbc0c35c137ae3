"""
Paginated receipt harvesting for one (identity, time range) session.

Relays cap every query at `limit` results and report no total count, so the
fetcher walks backwards in time: each page asks for receipts with
created_at <= cursor, and a successful page moves the cursor strictly below
the previous one. A page of already-known ids still moves the cursor. A short
answer (fewer than relay_limit events) is the only "no more data" signal.

With a RelayPool each relay saturates independently, so the page is judged
per relay: the cursor moves to the newest "oldest - 1" among the saturated
answers, and the session is complete only when no relay was saturated.

At most one page is in flight. close() supersedes the session: a page that
arrives afterwards is discarded and never merged.
"""

from __future__ import annotations

import asyncio
from typing import Any

from zaplytics.ingestion import loading_state as ls
from zaplytics.ingestion.content_resolver import ContentResolver
from zaplytics.ingestion.loading_state import LoadingState
from zaplytics.ingestion.time_range import ResolvedTimeRange
from zaplytics.nostr_listener.models import KIND_ZAP_RECEIPT, TargetContent, ZapReceipt
from zaplytics.nostr_listener.parser import coerce_timestamp, parse_batch
from zaplytics.nostr_listener.relay_client import FETCH_ERRORS, ReceiptSource, RelayPool, merge_answers
from zaplytics.zaplytics_logging import get_logger, short_id

logger = get_logger(__name__)

# Lookups per target before it is left unresolved for the session
MAX_RESOLVE_ATTEMPTS = 3


def _answer_cursor(answer: list[Any], cursor: int) -> int | None:
    """Strictly below both the answer's oldest event and the current cursor."""
    stamps = [
        ts
        for ts in (coerce_timestamp(ev.get("created_at")) for ev in answer if isinstance(ev, dict))
        if ts is not None
    ]
    if not stamps:
        return None
    return min(min(stamps), cursor) - 1


def _page_cursor(answers: list[list[Any]], cursor: int, relay_limit: int) -> tuple[int | None, int]:
    """
    Next cursor and the largest single answer size.

    Only saturated answers move the cursor, and the newest of their candidates
    wins so no saturated relay is skipped past. When nothing was saturated the
    largest answer is short and the page completes the session.
    """
    largest = max((len(a) for a in answers), default=0)
    saturated = [a for a in answers if len(a) >= relay_limit]
    candidates = [c for c in (_answer_cursor(a, cursor) for a in (saturated or answers)) if c is not None]
    if not candidates:
        return None, largest
    return max(candidates), largest


class PaginatedFetcher:
    """
    Harvest every zap receipt for `identity` inside `time_range`.

    The receipt accumulator and LoadingState are owned by this object; callers
    read them through `receipts`, `targets` and `state`.
    """

    def __init__(
        self,
        source: ReceiptSource,
        identity: str,
        time_range: ResolvedTimeRange,
        *,
        relay_limit: int,
        fetch_timeout: float | None = None,
        resolver: ContentResolver | None = None,
        auto_load: bool = True,
    ) -> None:
        if not identity:
            raise ValueError("identity must be non-empty")
        self._source = source
        self._identity = identity
        self._range = time_range
        self._fetch_timeout = fetch_timeout
        self._resolver = resolver
        self._receipts: dict[str, ZapReceipt] = {}
        self._targets: dict[str, TargetContent] = {}
        self._resolve_attempts: dict[str, int] = {}
        self._given_up: set[str] = set()
        self._state = ls.on_selection_change(relay_limit, time_range.until, auto_load=auto_load)
        self._lock = asyncio.Lock()
        self._closed = False
        self._revision = 0

    @property
    def identity(self) -> str:
        return self._identity

    @property
    def time_range(self) -> ResolvedTimeRange:
        return self._range

    @property
    def state(self) -> LoadingState:
        return self._state

    @property
    def receipts(self) -> list[ZapReceipt]:
        return list(self._receipts.values())

    @property
    def targets(self) -> dict[str, TargetContent]:
        return dict(self._targets)

    @property
    def revision(self) -> int:
        """Bumped whenever receipts or resolved targets change."""
        return self._revision

    @property
    def closed(self) -> bool:
        return self._closed

    def update_state(self, state: LoadingState) -> None:
        """Replace the state with a transition computed by the auto-load controller."""
        self._state = state

    def close(self) -> None:
        """Supersede this session; in-flight results will be discarded."""
        self._closed = True

    def build_filter(self) -> dict[str, Any]:
        cursor = self._state.until_cursor if self._state.until_cursor is not None else self._range.until
        return {
            "kinds": [KIND_ZAP_RECEIPT],
            "#p": [self._identity],
            "since": self._range.since,
            "until": cursor,
            "limit": self._state.relay_limit,
        }

    async def fetch_next_page(self) -> bool:
        """
        Fetch and apply one page. Returns True if a page was applied.

        A no-op (False) when the session is closed, complete, or a page is
        already in flight. Fetch errors become on_page_failure state.
        """
        if self._closed or not self._state.can_load_more or self._lock.locked():
            return False
        async with self._lock:
            self._state = ls.on_page_started(self._state)
            flt = self.build_filter()
            cursor = flt["until"]
            try:
                if self._fetch_timeout is not None:
                    answers = await asyncio.wait_for(self._query(flt), timeout=self._fetch_timeout)
                else:
                    answers = await self._query(flt)
            except FETCH_ERRORS as e:
                if self._closed:
                    self._state = ls.on_page_discarded(self._state)
                    return False
                message = str(e) or type(e).__name__
                self._state = ls.on_page_failure(self._state, message)
                logger.warning(
                    "fetch_page_failed",
                    identity=short_id(self._identity),
                    cursor=cursor,
                    consecutive_failures=self._state.consecutive_failures,
                    error=message,
                )
                return False

            raw = merge_answers(answers) if len(answers) > 1 else (answers[0] if answers else [])
            if self._closed:
                self._discard(len(raw))
                return False

            new_receipts = self._new_receipts(parse_batch(raw))
            new_targets: dict[str, TargetContent] = {}
            if self._resolver is not None:
                pending = self._pending_targets(new_receipts)
                if pending:
                    new_targets = await self._resolver.resolve(pending)
                    self._note_attempts(pending, new_targets)
                if self._closed:
                    self._discard(len(raw))
                    return False

            self._merge(new_receipts, new_targets)
            next_cursor, largest = _page_cursor(answers, cursor, self._state.relay_limit)
            self._state = ls.on_page_success(
                self._state,
                accepted=len(new_receipts),
                page_size=largest,
                next_cursor=next_cursor,
                since=self._range.since,
            )
            logger.info(
                "fetch_page_success",
                identity=short_id(self._identity),
                page=self._state.pages_fetched,
                page_size=len(raw),
                relays=len(answers),
                accepted=len(new_receipts),
                total_fetched=self._state.total_fetched,
                next_cursor=next_cursor,
                is_complete=self._state.is_complete,
            )
            return True

    async def _query(self, flt: dict[str, Any]) -> list[list[dict[str, Any]]]:
        """One answer per responding relay; a plain source counts as one relay."""
        if isinstance(self._source, RelayPool):
            return await self._source.query_each(flt)
        return [await self._source.query(flt)]

    def _pending_targets(self, new_receipts: list[ZapReceipt]) -> list[str]:
        """New targets plus earlier ones whose lookup failed and may be retried."""
        pending = {
            r.target_event_id
            for r in new_receipts
            if r.target_event_id and r.target_event_id not in self._targets
        }
        pending.update(t for t, n in self._resolve_attempts.items() if n < MAX_RESOLVE_ATTEMPTS)
        return sorted(t for t in pending if t not in self._targets and t not in self._given_up)

    def _note_attempts(self, pending: list[str], resolved: dict[str, TargetContent]) -> None:
        for target_id in pending:
            if target_id in resolved:
                self._resolve_attempts.pop(target_id, None)
                continue
            attempts = self._resolve_attempts.get(target_id, 0) + 1
            if attempts >= MAX_RESOLVE_ATTEMPTS:
                self._resolve_attempts.pop(target_id, None)
                self._given_up.add(target_id)
                logger.debug("target_unresolved", target=short_id(target_id), attempts=attempts)
            else:
                self._resolve_attempts[target_id] = attempts

    def _discard(self, page_size: int) -> None:
        self._state = ls.on_page_discarded(self._state)
        logger.info(
            "fetch_result_discarded",
            identity=short_id(self._identity),
            page_size=page_size,
            reason="session_superseded",
        )

    def _new_receipts(self, parsed: list[ZapReceipt]) -> list[ZapReceipt]:
        """Receipts not yet accumulated and inside the window; dedup within the page too."""
        fresh: dict[str, ZapReceipt] = {}
        for receipt in parsed:
            if receipt.id in self._receipts or receipt.id in fresh:
                continue
            if not self._range.contains(receipt.timestamp):
                logger.debug("receipt_outside_range", event_id=short_id(receipt.id), timestamp=receipt.timestamp)
                continue
            fresh[receipt.id] = receipt
        return list(fresh.values())

    def _merge(self, new_receipts: list[ZapReceipt], new_targets: dict[str, TargetContent]) -> None:
        if not new_receipts and not new_targets:
            return
        self._targets.update(new_targets)
        for receipt in new_receipts:
            self._receipts[receipt.id] = receipt
        self._revision += 1

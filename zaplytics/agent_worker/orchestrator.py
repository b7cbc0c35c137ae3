"""
Analytics orchestrator: one live session per (identity, range, custom range).

select() resolves the window, supersedes the previous session (closing its
fetcher and stopping its auto-load loop) and starts a new one. snapshot()
exposes status, selection, loading state and the statistics bundle; the bundle
is recomputed only when the session's receipt set or resolved targets changed.

Statuses:
- idle: no identity selected.
- awaiting_input: custom range with a missing bound; nothing fetched, no statistics.
- loading: session active, more data may exist (includes a paused or tripped auto-load).
- complete: every receipt in the window has been harvested.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping

from zaplytics.agent_worker.runtime import SessionRuntime
from zaplytics.analysis_engine import AggregationConfig, ZapAnalytics, aggregate, loyal_zappers
from zaplytics.analysis_engine.models import ZapperLoyaltyStat
from zaplytics.config import Settings
from zaplytics.ingestion.loading_state import LoadingState
from zaplytics.ingestion.time_range import (
    CustomRange,
    ResolvedTimeRange,
    TimeRange,
    parse_time_range,
    resolve_time_range,
)
from zaplytics.nostr_listener.keys import normalize_identity
from zaplytics.nostr_listener.relay_client import ReceiptSource, RelayPool
from zaplytics.zaplytics_logging import bind_identity, get_logger, short_id

logger = get_logger(__name__)


class SessionStatus(str, Enum):
    IDLE = "idle"
    AWAITING_INPUT = "awaiting_input"
    LOADING = "loading"
    COMPLETE = "complete"


class NoActiveSession(LookupError):
    """Raised by control operations when no fetch session is running."""


@dataclass(frozen=True)
class Selection:
    identity: str | None
    time_range: TimeRange
    custom_range: CustomRange | None = None

    def to_dict(self) -> dict[str, Any]:
        custom = None
        if self.custom_range is not None:
            custom = {"from": _bound_str(self.custom_range.start), "to": _bound_str(self.custom_range.end)}
        return {
            "identity": self.identity,
            "time_range": self.time_range.value,
            "custom_range": custom,
        }


def _bound_str(bound: Any) -> Any:
    if bound is None or isinstance(bound, (int, float, str)):
        return bound
    return bound.isoformat()


@dataclass(frozen=True)
class AnalyticsSnapshot:
    """Everything a renderer needs; every collection is partial until loading_state.is_complete."""

    status: SessionStatus
    selection: Selection | None = None
    time_window: ResolvedTimeRange | None = None
    loading_state: LoadingState | None = None
    statistics: ZapAnalytics | None = None
    loyal_zappers: list[ZapperLoyaltyStat] = field(default_factory=list)
    auto_load_phase: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "selection": self.selection.to_dict() if self.selection else None,
            "time_window": self.time_window.to_dict() if self.time_window else None,
            "loading_state": self.loading_state.to_dict() if self.loading_state else None,
            "auto_load_phase": self.auto_load_phase,
            "statistics": self.statistics.to_dict() if self.statistics else None,
            "loyal_zappers": [z.to_dict() for z in self.loyal_zappers],
        }


class AnalyticsOrchestrator:
    """
    Own the current session and rebuild it on selection change.

    `source` is any ReceiptSource; when omitted a RelayPool over
    settings.relay_urls is created on first use.
    """

    def __init__(
        self,
        settings: Settings,
        source: ReceiptSource | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings = settings
        self._source = source
        self._clock = clock
        self._aggregation = AggregationConfig(
            top_content_limit=settings.top_content_limit,
            tz=settings.tzinfo,
        )
        self._selection: Selection | None = None
        self._window: ResolvedTimeRange | None = None
        self._runtime: SessionRuntime | None = None
        self._relay_limit: int | None = None
        self._select_lock = asyncio.Lock()
        self._stats_key: tuple[int, int] | None = None
        self._stats: ZapAnalytics | None = None

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def selection(self) -> Selection | None:
        return self._selection

    @property
    def has_session(self) -> bool:
        return self._selection is not None

    @property
    def status(self) -> SessionStatus:
        if self._selection is None or self._selection.identity is None:
            return SessionStatus.IDLE
        if self._runtime is None:
            return SessionStatus.AWAITING_INPUT
        if self._runtime.fetcher.state.is_complete:
            return SessionStatus.COMPLETE
        return SessionStatus.LOADING

    def _get_source(self) -> ReceiptSource:
        if self._source is None:
            self._source = RelayPool(self._settings.relay_urls, timeout=self._settings.fetch_timeout_sec)
        return self._source

    async def _effective_relay_limit(self) -> int:
        """Configured limit, capped once per process by the relays' advertised max_limit."""
        if self._relay_limit is None:
            configured = self._settings.relay_limit
            source = self._get_source()
            if self._settings.discover_relay_limit and isinstance(source, RelayPool):
                self._relay_limit = await source.discover_relay_limit(configured)
            else:
                self._relay_limit = configured
        return self._relay_limit

    async def select(
        self,
        identity: str | None,
        time_range: TimeRange | str = TimeRange.LAST_7D,
        custom_range: CustomRange | Mapping[str, Any] | None = None,
    ) -> AnalyticsSnapshot:
        """
        Switch to a new selection. Identical selections are a no-op.

        Raises ValueError for a malformed identity, an unknown range or an
        inverted custom range; the current session is kept in that case.
        """
        rng = parse_time_range(time_range)
        ident = normalize_identity(identity) if identity and identity.strip() else None
        if isinstance(custom_range, Mapping):
            custom_range = CustomRange.from_mapping(custom_range)
        selection = Selection(
            identity=ident,
            time_range=rng,
            custom_range=(custom_range or CustomRange()) if rng is TimeRange.CUSTOM else None,
        )
        window = resolve_time_range(rng, selection.custom_range, now=int(self._clock()), tz=self._settings.tzinfo)

        async with self._select_lock:
            if selection == self._selection:
                return self.snapshot()
            await self._discard_session()
            self._selection = selection
            self._window = window
            if ident is None:
                logger.info("session_idle")
            elif window is None:
                logger.info("session_awaiting_input", identity=short_id(ident), time_range=rng.value)
            else:
                await self._start_session(ident, window)
        return self.snapshot()

    async def _start_session(self, identity: str, window: ResolvedTimeRange) -> None:
        relay_limit = await self._effective_relay_limit()
        self._runtime = SessionRuntime.build(
            self._get_source(),
            identity,
            window,
            settings=self._settings,
            relay_limit=relay_limit,
        )
        self._runtime.start()
        bind_identity(identity).info(
            "session_started",
            since=window.since,
            until=window.until,
            granularity=window.granularity.value,
            relay_limit=relay_limit,
        )

    async def _discard_session(self) -> None:
        runtime, self._runtime = self._runtime, None
        self._stats_key = None
        self._stats = None
        if runtime is None:
            return
        await runtime.stop()
        logger.info(
            "session_discarded",
            identity=short_id(runtime.fetcher.identity),
            total_fetched=runtime.fetcher.state.total_fetched,
        )

    def _require_runtime(self) -> SessionRuntime:
        if self._runtime is None:
            raise NoActiveSession("no active loading session")
        return self._runtime

    def _statistics(self, runtime: SessionRuntime) -> ZapAnalytics:
        fetcher = runtime.fetcher
        key = (id(fetcher), fetcher.revision)
        if self._stats is None or self._stats_key != key:
            self._stats = aggregate(fetcher.receipts, fetcher.time_range, fetcher.targets, self._aggregation)
            self._stats_key = key
        return self._stats

    def snapshot(self) -> AnalyticsSnapshot:
        runtime = self._runtime
        if runtime is None:
            return AnalyticsSnapshot(
                status=self.status,
                selection=self._selection,
                time_window=self._window,
            )
        stats = self._statistics(runtime)
        return AnalyticsSnapshot(
            status=self.status,
            selection=self._selection,
            time_window=self._window,
            loading_state=runtime.fetcher.state,
            statistics=stats,
            loyal_zappers=loyal_zappers(stats.zapper_loyalty, self._settings.loyalty_min_zaps),
            auto_load_phase=runtime.controller.phase.value,
        )

    # --- user actions on the current session ---

    async def load_more_zaps(self) -> AnalyticsSnapshot:
        await self._require_runtime().controller.load_more_zaps()
        return self.snapshot()

    def toggle_auto_load(self) -> AnalyticsSnapshot:
        self._require_runtime().controller.toggle_auto_load()
        return self.snapshot()

    def restart_auto_load(self) -> AnalyticsSnapshot:
        self._require_runtime().controller.restart_auto_load()
        return self.snapshot()

    def dismiss_error(self) -> AnalyticsSnapshot:
        self._require_runtime().dismiss_error()
        return self.snapshot()

    async def wait_until_settled(self, timeout: float | None = None) -> AnalyticsSnapshot:
        """Wait until the session is complete or auto-load stopped; immediate without a session."""
        runtime = self._runtime
        if runtime is not None:
            await runtime.controller.wait_until_settled(timeout)
        return self.snapshot()

    async def close(self) -> None:
        async with self._select_lock:
            await self._discard_session()
            self._selection = None
            self._window = None
        logger.info("orchestrator_closed")

"""
Auto-load controller: unattended continuation of a PaginatedFetcher.

Small explicit state machine:

    IDLE ──delay──▶ FETCHING ──ok──▶ IDLE (or COMPLETE on a short page)
                       │
                       └─fail─▶ BACKOFF(n) ──delay·2^(n-1)──▶ FETCHING
                                   │
                                   └─ n reaches failure_threshold ─▶ STOPPED

STOPPED also covers a user pause. User actions (toggle, restart, manual
load-more) wake the loop so it re-evaluates immediately; manual load-more works
in every phase and never waits for the loop.
"""

from __future__ import annotations

import asyncio
import contextlib
from enum import Enum

from zaplytics.ingestion import loading_state as ls
from zaplytics.ingestion.fetcher import PaginatedFetcher
from zaplytics.zaplytics_logging import get_logger, short_id

logger = get_logger(__name__)

DEFAULT_FAILURE_THRESHOLD = 3


class AutoLoadPhase(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    BACKOFF = "backoff"
    STOPPED = "stopped"
    COMPLETE = "complete"


class AutoLoadController:
    """Drive `fetcher` page by page while auto-load is enabled and more data may exist."""

    def __init__(
        self,
        fetcher: PaginatedFetcher,
        *,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        delay_sec: float = 0.5,
        backoff_base_sec: float = 1.0,
        backoff_max_sec: float = 30.0,
    ) -> None:
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        self._fetcher = fetcher
        self._failure_threshold = failure_threshold
        self._delay_sec = delay_sec
        self._backoff_base_sec = backoff_base_sec
        self._backoff_max_sec = backoff_max_sec
        self._phase = AutoLoadPhase.IDLE
        self._wake = asyncio.Event()
        self._settled = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def phase(self) -> AutoLoadPhase:
        return self._phase

    @property
    def failure_threshold(self) -> int:
        return self._failure_threshold

    def backoff_delay(self, failures: int) -> float:
        """Delay before the next attempt after `failures` consecutive failures."""
        if failures <= 0:
            return self._delay_sec
        return min(self._backoff_base_sec * (2 ** (failures - 1)), self._backoff_max_sec)

    def start(self) -> None:
        """Start the loop on the running event loop. Idempotent."""
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._run(), name=f"auto-load-{short_id(self._fetcher.identity, 8)}")

    async def stop(self) -> None:
        """Cancel the loop and wait for it to exit."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def wait_until_settled(self, timeout: float | None = None) -> None:
        """Wait until the loop is COMPLETE or STOPPED (raises asyncio.TimeoutError on timeout)."""
        await asyncio.wait_for(self._settled.wait(), timeout=timeout)

    # --- user actions ---

    def toggle_auto_load(self) -> bool:
        """Pause or resume; returns the new auto_load_enabled value."""
        state = self._fetcher.state
        enabled = not state.auto_load_enabled
        self._fetcher.update_state(ls.with_auto_load(state, enabled))
        logger.info("auto_load_toggled", identity=short_id(self._fetcher.identity), enabled=enabled)
        if enabled:
            self._resume()
        else:
            self._wake.set()
        return enabled

    def restart_auto_load(self) -> None:
        """Reset consecutive failures and re-enable auto-load (recovery from the breaker)."""
        self._fetcher.update_state(ls.restart_auto_load(self._fetcher.state))
        logger.info("auto_load_restarted", identity=short_id(self._fetcher.identity))
        self._resume()

    async def load_more_zaps(self) -> bool:
        """Manual single page, available regardless of auto_load_enabled."""
        applied = await self._fetch_once()
        self._wake.set()
        return applied

    # --- loop ---

    def _resume(self) -> None:
        # waiters must not see the previous STOPPED phase as settled
        if not self._fetcher.state.is_complete and self._task is not None and not self._task.done():
            self._settled.clear()
        self._wake.set()

    def _set_phase(self, phase: AutoLoadPhase) -> None:
        if phase is not self._phase:
            logger.debug(
                "auto_load_phase",
                identity=short_id(self._fetcher.identity),
                phase=phase.value,
                previous=self._phase.value,
            )
        self._phase = phase
        if phase in (AutoLoadPhase.COMPLETE, AutoLoadPhase.STOPPED):
            self._settled.set()
        else:
            self._settled.clear()

    async def _fetch_once(self) -> bool:
        before = self._fetcher.state.consecutive_failures
        applied = await self._fetcher.fetch_next_page()
        state = self._fetcher.state
        if not applied and state.consecutive_failures > before:
            tripped = ls.trip_breaker(state, self._failure_threshold)
            if tripped is not state:
                self._fetcher.update_state(tripped)
                logger.warning(
                    "auto_load_circuit_open",
                    identity=short_id(self._fetcher.identity),
                    consecutive_failures=tripped.consecutive_failures,
                    threshold=self._failure_threshold,
                )
        return applied

    async def _pause(self, timeout: float | None) -> bool:
        """Sleep up to `timeout` (forever if None); True if woken by a user action."""
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False
        finally:
            self._wake.clear()

    async def _run(self) -> None:
        logger.info("auto_load_started", identity=short_id(self._fetcher.identity))
        try:
            while not self._fetcher.closed:
                state = self._fetcher.state
                if state.is_complete:
                    self._set_phase(AutoLoadPhase.COMPLETE)
                    return
                if not state.auto_load_enabled:
                    self._set_phase(AutoLoadPhase.STOPPED)
                    await self._pause(None)
                    continue
                failures = state.consecutive_failures
                self._set_phase(AutoLoadPhase.BACKOFF if failures else AutoLoadPhase.IDLE)
                delay = self.backoff_delay(failures)
                if delay > 0 and await self._pause(delay):
                    continue
                if not self._fetcher.state.can_load_more:
                    # a manual page is in flight; load_more_zaps wakes us when done
                    await self._pause(None)
                    continue
                self._set_phase(AutoLoadPhase.FETCHING)
                await self._fetch_once()
        finally:
            logger.info(
                "auto_load_exited",
                identity=short_id(self._fetcher.identity),
                phase=self._phase.value,
            )

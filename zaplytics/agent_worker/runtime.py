"""
Session runtime: the fetcher and auto-load loop of one live selection.

Built from Settings so every policy value (relay limit, timeouts, failure
threshold, delays) comes from configuration. Stopping a runtime closes the
fetcher first, so a page still in flight is discarded rather than merged.
"""

from __future__ import annotations

from dataclasses import dataclass

from zaplytics.config import Settings
from zaplytics.ingestion import loading_state as ls
from zaplytics.ingestion.auto_load import AutoLoadController
from zaplytics.ingestion.content_resolver import ContentResolver
from zaplytics.ingestion.fetcher import PaginatedFetcher
from zaplytics.ingestion.time_range import ResolvedTimeRange
from zaplytics.nostr_listener.relay_client import ReceiptSource


@dataclass
class SessionRuntime:
    fetcher: PaginatedFetcher
    controller: AutoLoadController

    @classmethod
    def build(
        cls,
        source: ReceiptSource,
        identity: str,
        window: ResolvedTimeRange,
        *,
        settings: Settings,
        relay_limit: int,
    ) -> "SessionRuntime":
        resolver = ContentResolver(source) if settings.resolve_content else None
        fetcher = PaginatedFetcher(
            source,
            identity,
            window,
            relay_limit=relay_limit,
            fetch_timeout=settings.fetch_timeout_sec,
            resolver=resolver,
        )
        controller = AutoLoadController(
            fetcher,
            failure_threshold=settings.failure_threshold,
            delay_sec=settings.auto_load_delay_sec,
            backoff_base_sec=settings.backoff_base_sec,
            backoff_max_sec=settings.backoff_max_sec,
        )
        return cls(fetcher=fetcher, controller=controller)

    def start(self) -> None:
        self.controller.start()

    async def stop(self) -> None:
        self.fetcher.close()
        await self.controller.stop()

    def dismiss_error(self) -> None:
        self.fetcher.update_state(ls.dismiss_error(self.fetcher.state))

# Receipt ingestion: time windows, paginated fetching, auto-load, content resolution.

from zaplytics.ingestion.auto_load import AutoLoadController, AutoLoadPhase
from zaplytics.ingestion.content_resolver import ContentResolver
from zaplytics.ingestion.fetcher import PaginatedFetcher
from zaplytics.ingestion.loading_state import LoadingState
from zaplytics.ingestion.time_range import (
    CustomRange,
    Granularity,
    ResolvedTimeRange,
    TimeRange,
    resolve_time_range,
)

__all__ = [
    "AutoLoadController",
    "AutoLoadPhase",
    "ContentResolver",
    "CustomRange",
    "Granularity",
    "LoadingState",
    "PaginatedFetcher",
    "ResolvedTimeRange",
    "TimeRange",
    "resolve_time_range",
]

"""
Derived statistics produced by the aggregation engine.

All records are recomputed from the accumulated receipt set; none are
persisted. Every to_dict() is JSON-serializable with deterministic ordering.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class EarningsPeriodPoint:
    bucket_start: int
    """Unix seconds at the start of the bucket (floor(ts / size) * size)."""
    total_msats: int = 0
    receipt_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "bucket_start": self.bucket_start,
            "total_msats": self.total_msats,
            "receipt_count": self.receipt_count,
        }


@dataclass(frozen=True)
class TemporalPattern:
    """
    Two parallel histograms in the configured timezone.

    Index = hour of day (0-23) or day of week (0 = Sunday ... 6 = Saturday).
    """

    earnings_by_hour: tuple[int, ...] = (0,) * 24
    zaps_by_hour: tuple[int, ...] = (0,) * 24
    earnings_by_day_of_week: tuple[int, ...] = (0,) * 7
    zaps_by_day_of_week: tuple[int, ...] = (0,) * 7

    def to_dict(self) -> dict[str, Any]:
        return {
            "earnings_by_hour": list(self.earnings_by_hour),
            "zaps_by_hour": list(self.zaps_by_hour),
            "earnings_by_day_of_week": list(self.earnings_by_day_of_week),
            "zaps_by_day_of_week": list(self.zaps_by_day_of_week),
        }


@dataclass(frozen=True)
class ContentStat:
    target_id: str
    total_msats: int
    receipt_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "target_id": self.target_id,
            "total_msats": self.total_msats,
            "receipt_count": self.receipt_count,
        }


@dataclass(frozen=True)
class ZapperLoyaltyStat:
    sender_pubkey: str
    receipt_count: int
    total_msats: int
    first_seen: int
    last_seen: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "sender_pubkey": self.sender_pubkey,
            "receipt_count": self.receipt_count,
            "total_msats": self.total_msats,
            "first_seen": self.first_seen,
            "last_seen": self.last_seen,
        }


@dataclass(frozen=True)
class ContentPerformance:
    """Per-target detail: earnings plus whatever engagement could be resolved."""

    target_id: str
    total_msats: int
    receipt_count: int
    unique_zappers: int
    average_msats: int
    first_zap: int
    last_zap: int
    hashtags: tuple[str, ...] = ()
    kind: int | None = None
    content_preview: str = ""
    reactions: int = 0
    reposts: int = 0
    replies: int = 0
    resolved: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "target_id": self.target_id,
            "total_msats": self.total_msats,
            "receipt_count": self.receipt_count,
            "unique_zappers": self.unique_zappers,
            "average_msats": self.average_msats,
            "first_zap": self.first_zap,
            "last_zap": self.last_zap,
            "hashtags": list(self.hashtags),
            "kind": self.kind,
            "content_preview": self.content_preview,
            "reactions": self.reactions,
            "reposts": self.reposts,
            "replies": self.replies,
            "resolved": self.resolved,
        }


@dataclass(frozen=True)
class HashtagStat:
    tag: str
    total_msats: int
    receipt_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "tag": self.tag,
            "total_msats": self.total_msats,
            "receipt_count": self.receipt_count,
        }


@dataclass(frozen=True)
class SummaryStats:
    total_msats: int = 0
    total_receipts: int = 0
    unique_zappers: int = 0
    average_msats: int = 0
    largest_msats: int = 0

    @property
    def total_sats(self) -> int:
        return self.total_msats // 1000

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_msats": self.total_msats,
            "total_sats": self.total_sats,
            "total_receipts": self.total_receipts,
            "unique_zappers": self.unique_zappers,
            "average_msats": self.average_msats,
            "largest_msats": self.largest_msats,
        }


@dataclass(frozen=True)
class ZapAnalytics:
    """The statistics bundle for one session (possibly partial until loading completes)."""

    summary: SummaryStats
    earnings_by_period: list[EarningsPeriodPoint] = field(default_factory=list)
    temporal_patterns: TemporalPattern = field(default_factory=TemporalPattern)
    top_content: list[ContentStat] = field(default_factory=list)
    zapper_loyalty: list[ZapperLoyaltyStat] = field(default_factory=list)
    content_performance: list[ContentPerformance] = field(default_factory=list)
    hashtag_performance: list[HashtagStat] = field(default_factory=list)
    granularity: str = "day"

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary.to_dict(),
            "granularity": self.granularity,
            "earnings_by_period": [p.to_dict() for p in self.earnings_by_period],
            "temporal_patterns": self.temporal_patterns.to_dict(),
            "top_content": [c.to_dict() for c in self.top_content],
            "zapper_loyalty": [z.to_dict() for z in self.zapper_loyalty],
            "content_performance": [c.to_dict() for c in self.content_performance],
            "hashtag_performance": [h.to_dict() for h in self.hashtag_performance],
        }

"""
Aggregation of accumulated zap receipts into the analytics bundle.

Pure functions of (receipts, time range, resolved targets, config). Every view
groups by key and then sorts the groups with a total order, so the result is
identical for any arrival order of the same receipt set. Only receipts inside
[since, until] are considered.

Runs on every growth of the receipt set (live, approximate during loading,
exact once loading is complete); cost is linear in receipts plus buckets.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import Iterable, Mapping

from zaplytics.analysis_engine.models import (
    ContentPerformance,
    ContentStat,
    EarningsPeriodPoint,
    HashtagStat,
    SummaryStats,
    TemporalPattern,
    ZapAnalytics,
    ZapperLoyaltyStat,
)
from zaplytics.ingestion.time_range import ResolvedTimeRange
from zaplytics.nostr_listener.models import TargetContent, ZapReceipt
from zaplytics.zaplytics_logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class AggregationConfig:
    """Presentation-independent aggregation policy."""

    top_content_limit: int = 10
    tz: tzinfo = timezone.utc


def earnings_by_period(
    receipts: Iterable[ZapReceipt],
    time_range: ResolvedTimeRange,
) -> list[EarningsPeriodPoint]:
    """
    Sum amounts per bucket; every bucket overlapping [since, until] is emitted,
    zero-filled, ascending by bucket start.
    """
    size = time_range.bucket_seconds
    first = (time_range.since // size) * size
    last = (time_range.until // size) * size
    totals: dict[int, list[int]] = {start: [0, 0] for start in range(first, last + 1, size)}
    for r in receipts:
        if not time_range.contains(r.timestamp):
            continue
        slot = totals[(r.timestamp // size) * size]
        slot[0] += r.amount_msats
        slot[1] += 1
    return [
        EarningsPeriodPoint(bucket_start=start, total_msats=total, receipt_count=count)
        for start, (total, count) in sorted(totals.items())
    ]


def temporal_patterns(receipts: Iterable[ZapReceipt], tz: tzinfo = timezone.utc) -> TemporalPattern:
    """Hour-of-day and day-of-week histograms (0 = Sunday) in `tz`."""
    earn_hour = [0] * 24
    zaps_hour = [0] * 24
    earn_dow = [0] * 7
    zaps_dow = [0] * 7
    for r in receipts:
        local = datetime.fromtimestamp(r.timestamp, tz=tz)
        dow = (local.weekday() + 1) % 7
        earn_hour[local.hour] += r.amount_msats
        zaps_hour[local.hour] += 1
        earn_dow[dow] += r.amount_msats
        zaps_dow[dow] += 1
    return TemporalPattern(
        earnings_by_hour=tuple(earn_hour),
        zaps_by_hour=tuple(zaps_hour),
        earnings_by_day_of_week=tuple(earn_dow),
        zaps_by_day_of_week=tuple(zaps_dow),
    )


def _group_by_target(receipts: Iterable[ZapReceipt]) -> dict[str, list[ZapReceipt]]:
    groups: dict[str, list[ZapReceipt]] = {}
    for r in receipts:
        if r.target_event_id:
            groups.setdefault(r.target_event_id, []).append(r)
    return groups


def _ranking_key(target_id: str, total: int, count: int) -> tuple[int, int, str]:
    return (-total, -count, target_id)


def top_content(receipts: Iterable[ZapReceipt], limit: int | None = None) -> list[ContentStat]:
    """Targets by earnings desc, then receipt count desc, then id asc."""
    stats = [
        ContentStat(
            target_id=target_id,
            total_msats=sum(r.amount_msats for r in group),
            receipt_count=len(group),
        )
        for target_id, group in _group_by_target(receipts).items()
    ]
    stats.sort(key=lambda s: _ranking_key(s.target_id, s.total_msats, s.receipt_count))
    return stats[:limit] if limit is not None else stats


def zapper_loyalty(receipts: Iterable[ZapReceipt]) -> list[ZapperLoyaltyStat]:
    """
    Per-sender count, sum and first/last timestamps. Receipts without a known
    sender are left out of this view only. Sorted by count desc, total desc, pubkey.
    """
    acc: dict[str, list[int]] = {}
    for r in receipts:
        if not r.sender_pubkey:
            continue
        entry = acc.get(r.sender_pubkey)
        if entry is None:
            acc[r.sender_pubkey] = [1, r.amount_msats, r.timestamp, r.timestamp]
        else:
            entry[0] += 1
            entry[1] += r.amount_msats
            entry[2] = min(entry[2], r.timestamp)
            entry[3] = max(entry[3], r.timestamp)
    stats = [
        ZapperLoyaltyStat(
            sender_pubkey=pubkey,
            receipt_count=count,
            total_msats=total,
            first_seen=first,
            last_seen=last,
        )
        for pubkey, (count, total, first, last) in acc.items()
    ]
    stats.sort(key=lambda s: (-s.receipt_count, -s.total_msats, s.sender_pubkey))
    return stats


def loyal_zappers(stats: Iterable[ZapperLoyaltyStat], min_receipts: int) -> list[ZapperLoyaltyStat]:
    """Presentation-side loyalty threshold over the raw per-sender stats."""
    return [s for s in stats if s.receipt_count >= min_receipts]


def content_performance(
    receipts: Iterable[ZapReceipt],
    targets: Mapping[str, TargetContent] | None = None,
) -> list[ContentPerformance]:
    """Every zapped target with earnings detail and resolved engagement, ranked like top_content."""
    targets = targets or {}
    out: list[ContentPerformance] = []
    for target_id, group in _group_by_target(receipts).items():
        total = sum(r.amount_msats for r in group)
        stamps = [r.timestamp for r in group]
        info = targets.get(target_id)
        hashtags: set[str] = set()
        for r in group:
            hashtags |= r.hashtags
        if info is not None:
            hashtags |= info.hashtags
        out.append(ContentPerformance(
            target_id=target_id,
            total_msats=total,
            receipt_count=len(group),
            unique_zappers=len({r.sender_pubkey for r in group if r.sender_pubkey}),
            average_msats=total // len(group),
            first_zap=min(stamps),
            last_zap=max(stamps),
            hashtags=tuple(sorted(hashtags)),
            kind=info.kind if info else None,
            content_preview=info.content_preview if info else "",
            reactions=info.reactions if info else 0,
            reposts=info.reposts if info else 0,
            replies=info.replies if info else 0,
            resolved=info is not None,
        ))
    out.sort(key=lambda c: _ranking_key(c.target_id, c.total_msats, c.receipt_count))
    return out


def _receipt_hashtags(receipt: ZapReceipt, targets: Mapping[str, TargetContent]) -> frozenset[str]:
    """The receipt's own hashtags joined with those of its resolved target note."""
    info = targets.get(receipt.target_event_id) if receipt.target_event_id else None
    return (receipt.hashtags | info.hashtags) if info is not None else receipt.hashtags


def hashtag_performance(
    receipts: Iterable[ZapReceipt],
    targets: Mapping[str, TargetContent] | None = None,
) -> list[HashtagStat]:
    """
    Each receipt's full amount counts toward every one of its hashtags (no
    splitting), including the tags of its resolved target. Sorted by earnings
    desc, count desc, tag asc.
    """
    targets = targets or {}
    acc: dict[str, list[int]] = {}
    for r in receipts:
        for tag in _receipt_hashtags(r, targets):
            entry = acc.setdefault(tag, [0, 0])
            entry[0] += r.amount_msats
            entry[1] += 1
    stats = [HashtagStat(tag=tag, total_msats=total, receipt_count=count) for tag, (total, count) in acc.items()]
    stats.sort(key=lambda h: (-h.total_msats, -h.receipt_count, h.tag))
    return stats


def summary_stats(receipts: Iterable[ZapReceipt]) -> SummaryStats:
    receipts = list(receipts)
    if not receipts:
        return SummaryStats()
    total = sum(r.amount_msats for r in receipts)
    return SummaryStats(
        total_msats=total,
        total_receipts=len(receipts),
        unique_zappers=len({r.sender_pubkey for r in receipts if r.sender_pubkey}),
        average_msats=total // len(receipts),
        largest_msats=max(r.amount_msats for r in receipts),
    )


def aggregate(
    receipts: Iterable[ZapReceipt],
    time_range: ResolvedTimeRange,
    targets: Mapping[str, TargetContent] | None = None,
    config: AggregationConfig | None = None,
) -> ZapAnalytics:
    """Compute the full statistics bundle for the in-range receipts."""
    config = config or AggregationConfig()
    in_range = [r for r in receipts if time_range.contains(r.timestamp)]
    bundle = ZapAnalytics(
        summary=summary_stats(in_range),
        earnings_by_period=earnings_by_period(in_range, time_range),
        temporal_patterns=temporal_patterns(in_range, config.tz),
        top_content=top_content(in_range, config.top_content_limit),
        zapper_loyalty=zapper_loyalty(in_range),
        content_performance=content_performance(in_range, targets),
        hashtag_performance=hashtag_performance(in_range, targets),
        granularity=time_range.granularity.value,
    )
    logger.debug(
        "analytics_aggregated",
        receipts=len(in_range),
        buckets=len(bundle.earnings_by_period),
        targets=len(bundle.content_performance),
    )
    return bundle

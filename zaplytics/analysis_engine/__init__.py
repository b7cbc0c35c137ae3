"""
Analysis engine package: zap earnings analytics.

Consumes the accumulated, deduplicated receipt set of one session and produces
the statistics bundle: earnings over time, temporal patterns, top content,
zapper loyalty, content performance, hashtag performance and summary metrics.
"""

from zaplytics.analysis_engine.aggregation import (
    AggregationConfig,
    aggregate,
    content_performance,
    earnings_by_period,
    hashtag_performance,
    loyal_zappers,
    summary_stats,
    temporal_patterns,
    top_content,
    zapper_loyalty,
)
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

__all__ = [
    "AggregationConfig",
    "ContentPerformance",
    "ContentStat",
    "EarningsPeriodPoint",
    "HashtagStat",
    "SummaryStats",
    "TemporalPattern",
    "ZapAnalytics",
    "ZapperLoyaltyStat",
    "aggregate",
    "content_performance",
    "earnings_by_period",
    "hashtag_performance",
    "loyal_zappers",
    "summary_stats",
    "temporal_patterns",
    "top_content",
    "zapper_loyalty",
]

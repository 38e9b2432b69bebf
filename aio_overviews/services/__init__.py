"""Scan services: rate limiting, scan coordination, stats aggregation, backfill."""

from .rate_limit import (
    ANONYMOUS_IDENTITY,
    RateLimitDecision,
    ScanRateLimiter,
    resolve_identity,
)
from .scanner import (
    DisplayKeyword,
    ScanCoordinator,
    ScanResult,
    ScanSummary,
    build_scan_result,
)
from .stats import (
    SEVERITY_TIERS,
    GlobalStatsSnapshot,
    StatsAggregator,
    build_stats_view,
    compute_global_stats,
    severity_tier,
)
from .backfill import BackfillReport, rebuild_from_archive

__all__ = [
    "ANONYMOUS_IDENTITY",
    "RateLimitDecision",
    "ScanRateLimiter",
    "resolve_identity",
    "DisplayKeyword",
    "ScanCoordinator",
    "ScanResult",
    "ScanSummary",
    "build_scan_result",
    "SEVERITY_TIERS",
    "GlobalStatsSnapshot",
    "StatsAggregator",
    "build_stats_view",
    "compute_global_stats",
    "severity_tier",
    "BackfillReport",
    "rebuild_from_archive",
]

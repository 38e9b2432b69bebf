"""
Global Stats Aggregation

Recomputes platform-wide statistics from every domain record after each
scan. The stats row is always a full recomputation, never an increment,
so concurrent writers cannot make it drift.

NOTE ON COUNTING:
- total_keywords = count of keyword-domain pairs (rankings), NOT unique keywords
- The same keyword counted once per domain that ranks for it
"""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)


# Severity tiers by share of a domain's keywords with an AI Overview.
# Inclusive lower bounds, checked in this order.
SEVERITY_THRESHOLDS = (
    ("critical", 75),
    ("high", 50),
    ("medium", 25),
)
SEVERITY_TIERS = ("critical", "high", "medium", "low")

SEVERITY_LABELS = {
    "critical": "Critical",
    "high": "High Risk",
    "medium": "Medium",
    "low": "Low Risk",
}

INTENTS = ("informational", "commercial", "transactional", "navigational")


def severity_tier(with_overview: int, total: int) -> str:
    """Classify a domain by the percentage of its keywords with an AI Overview."""
    if not total:
        return "low"
    percent = (with_overview / total) * 100
    for tier, threshold in SEVERITY_THRESHOLDS:
        if percent >= threshold:
            return tier
    return "low"


def _percent(part: float, whole: float) -> float:
    """Percentage rounded to one decimal, 0 for an empty whole."""
    if not whole:
        return 0.0
    return round((part / whole) * 100, 1)


@dataclass
class GlobalStatsSnapshot:
    """Column values of the global stats row."""
    total_domains: int = 0
    total_keywords: int = 0
    keywords_with_overview: int = 0
    avg_overview_percent: float = 0.0
    total_search_volume: int = 0
    overview_search_volume: int = 0
    overview_percent: float = 0.0
    intent_informational: int = 0
    intent_commercial: int = 0
    intent_transactional: int = 0
    intent_navigational: int = 0
    severity_critical: int = 0
    severity_high: int = 0
    severity_medium: int = 0
    severity_low: int = 0
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_row(cls, row) -> "GlobalStatsSnapshot":
        """Build from a GlobalStats row."""
        return cls(**{name: getattr(row, name) for name in cls.__dataclass_fields__})


def compute_global_stats(domains: Iterable[Any], updated_at: Optional[datetime] = None) -> GlobalStatsSnapshot:
    """
    Aggregate domain records into global stats.

    Args:
        domains: Objects with the DomainRecord counter attributes
        updated_at: Timestamp stored on the stats row

    Returns:
        GlobalStatsSnapshot (all zeros for no domains)
    """
    snapshot = GlobalStatsSnapshot(updated_at=updated_at or datetime.utcnow())

    for d in domains:
        snapshot.total_domains += 1
        snapshot.total_keywords += d.keywords_analyzed or 0
        snapshot.keywords_with_overview += d.keywords_with_overview or 0
        snapshot.total_search_volume += d.total_search_volume or 0
        snapshot.overview_search_volume += d.overview_search_volume or 0

        for intent in INTENTS:
            column = f"intent_{intent}"
            setattr(snapshot, column, getattr(snapshot, column) + (getattr(d, column) or 0))

        tier = severity_tier(d.keywords_with_overview or 0, d.keywords_analyzed or 0)
        column = f"severity_{tier}"
        setattr(snapshot, column, getattr(snapshot, column) + 1)

    snapshot.avg_overview_percent = _percent(snapshot.keywords_with_overview, snapshot.total_keywords)
    snapshot.overview_percent = _percent(snapshot.overview_search_volume, snapshot.total_search_volume)

    return snapshot


class StatsAggregator:
    """
    Owns the global stats row.

    recompute() is idempotent: each run is a full recomputation from the
    domains table. Runs within one process are serialized so two scans
    finishing together never race to create the row.
    """

    def __init__(self, repository, clock: Callable[[], datetime] = datetime.utcnow):
        self.repository = repository
        self._clock = clock
        self._lock = asyncio.Lock()

    async def recompute(self) -> GlobalStatsSnapshot:
        """Rebuild the stats row from every domain record."""
        async with self._lock:
            domains = await asyncio.to_thread(self.repository.get_all_domains)
            snapshot = compute_global_stats(domains, updated_at=self._clock())
            await asyncio.to_thread(self.repository.save_global_stats, snapshot.to_dict())

        logger.info(
            f"Global stats recomputed: {snapshot.total_domains} domains, "
            f"{snapshot.total_keywords} rankings, {snapshot.avg_overview_percent}% with AI Overview"
        )
        return snapshot

    async def get_snapshot(self) -> Optional[GlobalStatsSnapshot]:
        """Current stats row, or None before the first scan."""
        row = await asyncio.to_thread(self.repository.get_global_stats)
        if row is None:
            return None
        return GlobalStatsSnapshot.from_row(row)


# ============================================================================
# READ MODEL
# ============================================================================

def _whole_percent(part: float, whole: float) -> int:
    if not whole:
        return 0
    return round((part / whole) * 100)


def build_stats_view(snapshot: Optional[GlobalStatsSnapshot]) -> Dict[str, Any]:
    """
    Shape the stats row for the landing and insights pages.

    Per-intent AI Overview counts are estimated from the overall rate;
    the domains table does not split overview counts by intent.
    """
    snapshot = snapshot or GlobalStatsSnapshot()

    tiers: List[Dict[str, Any]] = []
    for tier in SEVERITY_TIERS:
        count = getattr(snapshot, f"severity_{tier}")
        tiers.append({
            "name": tier,
            "label": SEVERITY_LABELS[tier],
            "count": count,
            "percent": _whole_percent(count, snapshot.total_domains),
        })

    overall_rate = (
        snapshot.keywords_with_overview / snapshot.total_keywords
        if snapshot.total_keywords else 0
    )

    intents: List[Dict[str, Any]] = []
    for intent in INTENTS:
        count = getattr(snapshot, f"intent_{intent}")
        if count <= 0:
            continue
        intents.append({
            "intent": intent,
            "label": intent.capitalize(),
            "keywords_count": count,
            "overview_count": round(count * overall_rate),
            "overview_percent": round(overall_rate * 100),
        })

    return {
        "total_domains": snapshot.total_domains,
        "total_keywords": snapshot.total_keywords,
        "avg_overview_percent": round(snapshot.avg_overview_percent),
        "severity_distribution": {
            "tiers": tiers,
            "total_domains": snapshot.total_domains,
        },
        "impact_stats": {
            "total_search_volume": snapshot.total_search_volume,
            "overview_search_volume": snapshot.overview_search_volume,
            "overview_percent": round(snapshot.overview_percent),
        },
        "intent_stats": {
            "intents": intents,
            "total_keywords": sum(getattr(snapshot, f"intent_{i}") for i in INTENTS),
        },
        "updated_at": snapshot.updated_at,
    }

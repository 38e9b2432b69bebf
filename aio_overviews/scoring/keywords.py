"""
Keyword Parser & Risk Scorer

Turns a raw ranked keywords response into scored keywords plus the
aggregate counts stored on the domain record.

Risk score = search_volume x overview_multiplier x rank_multiplier
- overview_multiplier: 2.0 with AI Overview, 0.5 without
- rank_multiplier: 1 / sqrt(position), positions below 1 count as 1

The score only orders keywords for display. It is not a probability and
has no upper bound.
"""

import math
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from ..collector.client import safe_get_items

logger = logging.getLogger(__name__)

AI_OVERVIEW_ITEM_TYPE = "ai_overview"
UNKNOWN_KEYWORD = "Unknown"

OVERVIEW_MULTIPLIER = 2.0
NO_OVERVIEW_MULTIPLIER = 0.5


class SearchIntent(Enum):
    """Search intent classification"""
    INFORMATIONAL = "informational"
    COMMERCIAL = "commercial"
    TRANSACTIONAL = "transactional"
    NAVIGATIONAL = "navigational"


def parse_intent(raw: Optional[str]) -> SearchIntent:
    """Map a DataForSEO main_intent label, defaulting to informational."""
    if isinstance(raw, str):
        try:
            return SearchIntent(raw.strip().lower())
        except ValueError:
            pass
    return SearchIntent.INFORMATIONAL


def calculate_risk_score(search_volume: float, position: int, has_ai_overview: bool) -> float:
    """
    Calculate keyword risk score.

    Examples:
        volume 1000, position 1, overview  -> 1000 x 2 x 1   = 2000
        volume 1000, position 4, overview  -> 1000 x 2 x 0.5 = 1000
    """
    multiplier = OVERVIEW_MULTIPLIER if has_ai_overview else NO_OVERVIEW_MULTIPLIER
    return search_volume * multiplier * (1 / math.sqrt(max(position, 1)))


@dataclass
class ParsedKeyword:
    """A ranked keyword with its risk score."""
    keyword: str
    search_volume: int
    position: int
    intent: SearchIntent
    etv: int
    has_ai_overview: bool
    risk_score: float = 0.0


@dataclass
class KeywordStats:
    """Aggregate counts over every parsed keyword of one scan."""
    total: int = 0
    with_overview: int = 0
    without_overview: int = 0
    by_intent: Dict[SearchIntent, int] = field(
        default_factory=lambda: {intent: 0 for intent in SearchIntent}
    )
    total_search_volume: int = 0
    overview_search_volume: int = 0


@dataclass
class ParsedResult:
    keywords: List[ParsedKeyword]
    stats: KeywordStats


def _dig(data: Any, *path: str) -> Any:
    """Walk nested dicts, returning None as soon as a level is missing."""
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def _as_number(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return value


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves upward (2.5 -> 3, -2.5 -> -2)."""
    return math.floor(value + 0.5)


def parse_item(item: Dict[str, Any]) -> ParsedKeyword:
    """Parse one ranked keyword item. Every field has a default."""
    serp_item_types = _dig(item, "keyword_data", "serp_info", "serp_item_types")
    if not isinstance(serp_item_types, list):
        serp_item_types = []
    has_ai_overview = AI_OVERVIEW_ITEM_TYPE in serp_item_types

    keyword = _dig(item, "keyword_data", "keyword")
    if not keyword or not isinstance(keyword, str):
        keyword = UNKNOWN_KEYWORD

    search_volume = int(_as_number(_dig(item, "keyword_data", "keyword_info", "search_volume")))
    position = int(_as_number(_dig(item, "ranked_serp_element", "serp_item", "rank_absolute")))
    etv = round_half_up(_as_number(_dig(item, "ranked_serp_element", "serp_item", "etv")))
    intent = parse_intent(_dig(item, "keyword_data", "search_intent_info", "main_intent"))

    return ParsedKeyword(
        keyword=keyword,
        search_volume=search_volume,
        position=position,
        intent=intent,
        etv=etv,
        has_ai_overview=has_ai_overview,
        risk_score=calculate_risk_score(search_volume, position, has_ai_overview),
    )


def compute_stats(keywords: Iterable[ParsedKeyword]) -> KeywordStats:
    """Count keywords by overview presence and intent, and sum volumes."""
    stats = KeywordStats()

    for kw in keywords:
        stats.total += 1
        if kw.has_ai_overview:
            stats.with_overview += 1
            stats.overview_search_volume += kw.search_volume
        else:
            stats.without_overview += 1
        stats.by_intent[kw.intent] += 1
        stats.total_search_volume += kw.search_volume

    return stats


def parse_ranked_keywords(raw_response: Any) -> ParsedResult:
    """
    Parse a ranked keywords response into scored keywords and stats.

    A response without tasks/result/items is a legitimate empty result,
    not an error.
    """
    items = safe_get_items(raw_response)
    if not items:
        logger.debug("Ranked keywords response contained no items")
        return ParsedResult(keywords=[], stats=KeywordStats())

    keywords = [parse_item(item) for item in items]
    return ParsedResult(keywords=keywords, stats=compute_stats(keywords))


def top_keywords(keywords: Iterable[ParsedKeyword], limit: int) -> List[ParsedKeyword]:
    """Highest risk first; ties keep their response order."""
    return sorted(keywords, key=lambda kw: kw.risk_score, reverse=True)[:limit]

"""
Keyword Scoring Package

Parses ranked keyword responses and scores each keyword by how exposed
it is to AI Overviews.
"""

from .keywords import (
    SearchIntent,
    ParsedKeyword,
    KeywordStats,
    ParsedResult,
    parse_intent,
    parse_item,
    calculate_risk_score,
    compute_stats,
    parse_ranked_keywords,
    top_keywords,
    round_half_up,
)

__all__ = [
    "SearchIntent",
    "ParsedKeyword",
    "KeywordStats",
    "ParsedResult",
    "parse_intent",
    "parse_item",
    "calculate_risk_score",
    "compute_stats",
    "parse_ranked_keywords",
    "top_keywords",
    "round_half_up",
]

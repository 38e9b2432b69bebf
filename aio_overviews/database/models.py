"""
SQLAlchemy Models for the AI Overview checker

Four tables:
1. scans: raw API responses, append-only (history + rate limit accounting)
2. domains: one row per domain, counters replaced on every fresh scan
3. keywords: every keyword of a domain's latest scan
4. stats: global platform stats, a single row recomputed after each scan

NOTE ON COUNTING: stats.total_keywords counts keyword-domain pairs
(rankings), not unique keyword strings.
"""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import (
    Column, String, Integer, Float, Boolean, DateTime,
    Enum, Index, CheckConstraint, JSON, Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base

from ..scoring.keywords import SearchIntent

Base = declarative_base()

GLOBAL_STATS_ID = 1

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in development and tests)
JSONPayload = JSON().with_variant(JSONB(), "postgresql")


class ScanArchive(Base):
    """Raw API response archive - never updated or deleted"""
    __tablename__ = "scans"

    id = Column(Uuid, primary_key=True, default=uuid4)
    domain = Column(String(255), nullable=False)
    raw_response = Column(JSONPayload)
    ip_address = Column(String(64), nullable=True)  # For rate limiting, null for anonymous
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("idx_scans_domain_created", "domain", "created_at"),
        Index("idx_scans_ip_created", "ip_address", "created_at"),
    )


class DomainRecord(Base):
    """Domain stats - one row per domain, always from the latest scan"""
    __tablename__ = "domains"

    domain = Column(String(255), primary_key=True)
    last_scan_id = Column(Uuid, nullable=True)

    # Keyword counts
    keywords_analyzed = Column(Integer, default=0, nullable=False)
    keywords_with_overview = Column(Integer, default=0, nullable=False)
    keywords_without_overview = Column(Integer, default=0, nullable=False)

    # Intent breakdown
    intent_informational = Column(Integer, default=0, nullable=False)
    intent_commercial = Column(Integer, default=0, nullable=False)
    intent_transactional = Column(Integer, default=0, nullable=False)
    intent_navigational = Column(Integer, default=0, nullable=False)

    # Search volume
    total_search_volume = Column(Integer, default=0, nullable=False)
    overview_search_volume = Column(Integer, default=0, nullable=False)

    # Timestamps
    first_scanned_at = Column(DateTime, nullable=False)
    last_scanned_at = Column(DateTime, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "keywords_with_overview + keywords_without_overview = keywords_analyzed",
            name="ck_domains_overview_split",
        ),
        CheckConstraint(
            "intent_informational + intent_commercial + intent_transactional"
            " + intent_navigational = keywords_analyzed",
            name="ck_domains_intent_split",
        ),
        Index("idx_domains_last_scanned", "last_scanned_at"),
    )

    @property
    def overview_percent(self) -> float:
        """Share of analyzed keywords with an AI Overview (0-100)."""
        if not self.keywords_analyzed:
            return 0.0
        return (self.keywords_with_overview / self.keywords_analyzed) * 100


class KeywordRecord(Base):
    """Keywords from a domain's latest scan - replaced wholesale on each scan"""
    __tablename__ = "keywords"

    id = Column(Uuid, primary_key=True, default=uuid4)
    domain = Column(String(255), nullable=False)
    scan_id = Column(Uuid, nullable=True)

    keyword = Column(String(500), nullable=False)
    search_volume = Column(Integer, default=0, nullable=False)
    position = Column(Integer, default=0, nullable=False)
    intent = Column(Enum(SearchIntent), default=SearchIntent.INFORMATIONAL, nullable=False)
    etv = Column(Integer, default=0, nullable=False)
    has_ai_overview = Column(Boolean, default=False, nullable=False)
    risk_score = Column(Float, default=0.0, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("idx_keywords_domain_risk", "domain", "risk_score"),
    )


class GlobalStats(Base):
    """Global platform stats - single row (id=1), fully recomputed"""
    __tablename__ = "stats"

    id = Column(Integer, primary_key=True, default=GLOBAL_STATS_ID)

    total_domains = Column(Integer, default=0, nullable=False)
    total_keywords = Column(Integer, default=0, nullable=False)  # Rankings, not unique keywords
    keywords_with_overview = Column(Integer, default=0, nullable=False)
    avg_overview_percent = Column(Float, default=0.0, nullable=False)

    total_search_volume = Column(Integer, default=0, nullable=False)
    overview_search_volume = Column(Integer, default=0, nullable=False)
    overview_percent = Column(Float, default=0.0, nullable=False)  # Volume weighted

    intent_informational = Column(Integer, default=0, nullable=False)
    intent_commercial = Column(Integer, default=0, nullable=False)
    intent_transactional = Column(Integer, default=0, nullable=False)
    intent_navigational = Column(Integer, default=0, nullable=False)

    severity_critical = Column(Integer, default=0, nullable=False)
    severity_high = Column(Integer, default=0, nullable=False)
    severity_medium = Column(Integer, default=0, nullable=False)
    severity_low = Column(Integer, default=0, nullable=False)

    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("id = 1", name="ck_stats_single_row"),
    )

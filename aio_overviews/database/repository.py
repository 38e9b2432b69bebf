"""
Repository Layer - Clean Interface for Data Operations

Provides simple methods to store and retrieve scans, domains, keywords and
global stats. Handles all SQLAlchemy complexity internally and reports every
store failure as PersistenceError.

Methods are synchronous; async callers run them with asyncio.to_thread().
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import and_, delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..errors import PersistenceError
from ..scoring.keywords import KeywordStats, ParsedKeyword, SearchIntent
from .models import (
    GLOBAL_STATS_ID,
    DomainRecord,
    GlobalStats,
    KeywordRecord,
    ScanArchive,
)
from .session import session_scope

logger = logging.getLogger(__name__)


class ScanRepository:
    """
    Data access for the four tables.

    Usage:
        repo = ScanRepository(create_session_factory(engine))
        scan_id = repo.insert_scan("example.com", raw, "203.0.113.7")
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @contextmanager
    def _session(self, operation: str) -> Iterator[Session]:
        try:
            with session_scope(self._session_factory) as db:
                yield db
        except SQLAlchemyError as e:
            logger.error(f"Database error during {operation}: {e}")
            raise PersistenceError(f"Failed to {operation}") from e

    # =========================================================================
    # SCANS - raw response archive
    # =========================================================================

    def insert_scan(
        self,
        domain: str,
        raw_response: Any,
        ip_address: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> UUID:
        """Archive a raw API response. Returns the scan id."""
        with self._session("save scan") as db:
            scan = ScanArchive(
                domain=domain,
                raw_response=raw_response,
                ip_address=ip_address,
                created_at=created_at or datetime.utcnow(),
            )
            db.add(scan)
            db.flush()
            scan_id = scan.id

        logger.debug(f"Archived scan {scan_id} for {domain}")
        return scan_id

    def get_scan_times_since(self, ip_address: str, since: datetime) -> List[datetime]:
        """Creation times of scans from one address after `since`, oldest first."""
        with self._session("count recent scans") as db:
            rows = db.execute(
                select(ScanArchive.created_at)
                .where(
                    ScanArchive.ip_address == ip_address,
                    ScanArchive.created_at > since,
                )
                .order_by(ScanArchive.created_at)
            ).scalars().all()
        return list(rows)

    def iter_latest_scans(self) -> Iterator[Tuple[ScanArchive, datetime]]:
        """
        Yield (latest scan, first scan time) for every archived domain.

        Used to rebuild domain and keyword records from the archive.
        """
        with self._session("fetch latest scans") as db:
            spans = (
                select(
                    ScanArchive.domain.label("domain"),
                    func.min(ScanArchive.created_at).label("first_at"),
                    func.max(ScanArchive.created_at).label("last_at"),
                )
                .group_by(ScanArchive.domain)
                .subquery()
            )
            rows = db.execute(
                select(ScanArchive, spans.c.first_at)
                .join(
                    spans,
                    and_(
                        ScanArchive.domain == spans.c.domain,
                        ScanArchive.created_at == spans.c.last_at,
                    ),
                )
                .order_by(ScanArchive.domain)
            ).all()

        seen = set()
        for scan, first_at in rows:
            if scan.domain in seen:
                continue
            seen.add(scan.domain)
            yield scan, first_at

    # =========================================================================
    # DOMAINS - one row per domain
    # =========================================================================

    def get_domain(self, domain: str) -> Optional[DomainRecord]:
        """Get domain stats regardless of age."""
        with self._session("fetch domain") as db:
            return db.get(DomainRecord, domain)

    def get_cached_domain(self, domain: str, fresh_since: datetime) -> Optional[DomainRecord]:
        """Get domain stats only if last scanned at or after `fresh_since`."""
        with self._session("check cache") as db:
            return db.execute(
                select(DomainRecord).where(
                    DomainRecord.domain == domain,
                    DomainRecord.last_scanned_at >= fresh_since,
                )
            ).scalar_one_or_none()

    def upsert_domain(
        self,
        domain: str,
        scan_id: Optional[UUID],
        stats: KeywordStats,
        scanned_at: datetime,
        first_scanned_at: Optional[datetime] = None,
    ) -> DomainRecord:
        """
        Replace a domain's counters with the stats of its latest scan.

        An explicit `first_scanned_at` is always written (archive rebuilds).
        Without it, existing domains keep theirs and new domains use
        `scanned_at`.
        """
        with self._session("save domain") as db:
            record = db.get(DomainRecord, domain)
            if record is None:
                record = DomainRecord(domain=domain, first_scanned_at=first_scanned_at or scanned_at)
                db.add(record)
            elif first_scanned_at is not None:
                record.first_scanned_at = first_scanned_at

            record.last_scan_id = scan_id
            record.keywords_analyzed = stats.total
            record.keywords_with_overview = stats.with_overview
            record.keywords_without_overview = stats.without_overview
            record.intent_informational = stats.by_intent[SearchIntent.INFORMATIONAL]
            record.intent_commercial = stats.by_intent[SearchIntent.COMMERCIAL]
            record.intent_transactional = stats.by_intent[SearchIntent.TRANSACTIONAL]
            record.intent_navigational = stats.by_intent[SearchIntent.NAVIGATIONAL]
            record.total_search_volume = stats.total_search_volume
            record.overview_search_volume = stats.overview_search_volume
            record.last_scanned_at = scanned_at
            db.flush()

        return record

    def get_all_domains(self) -> List[DomainRecord]:
        """All domain rows (for stats recalculation)."""
        with self._session("fetch domains") as db:
            return list(db.execute(select(DomainRecord)).scalars().all())

    # =========================================================================
    # KEYWORDS - latest scan per domain
    # =========================================================================

    def replace_keywords(
        self,
        domain: str,
        scan_id: Optional[UUID],
        keywords: Sequence[ParsedKeyword],
        created_at: Optional[datetime] = None,
    ) -> int:
        """
        Replace every keyword of a domain (DELETE old + INSERT new).

        Both statements run in one transaction.
        """
        created_at = created_at or datetime.utcnow()

        with self._session("replace keywords") as db:
            db.execute(delete(KeywordRecord).where(KeywordRecord.domain == domain))
            db.add_all([
                KeywordRecord(
                    domain=domain,
                    scan_id=scan_id,
                    keyword=kw.keyword,
                    search_volume=kw.search_volume,
                    position=kw.position,
                    intent=kw.intent,
                    etv=kw.etv,
                    has_ai_overview=kw.has_ai_overview,
                    risk_score=kw.risk_score,
                    created_at=created_at,
                )
                for kw in keywords
            ])

        logger.debug(f"Stored {len(keywords)} keywords for {domain}")
        return len(keywords)

    def get_keywords_by_domain(self, domain: str, limit: Optional[int] = None) -> List[KeywordRecord]:
        """Keywords for a domain, highest risk score first."""
        with self._session("fetch keywords") as db:
            query = (
                select(KeywordRecord)
                .where(KeywordRecord.domain == domain)
                .order_by(KeywordRecord.risk_score.desc())
            )
            if limit is not None:
                query = query.limit(limit)
            return list(db.execute(query).scalars().all())

    # =========================================================================
    # STATS - single global row
    # =========================================================================

    def get_global_stats(self) -> Optional[GlobalStats]:
        with self._session("fetch stats") as db:
            return db.get(GlobalStats, GLOBAL_STATS_ID)

    def save_global_stats(self, values: Dict[str, Any]) -> None:
        """Overwrite the global stats row with freshly computed values."""
        with self._session("update stats") as db:
            row = db.get(GlobalStats, GLOBAL_STATS_ID)
            if row is None:
                row = GlobalStats(id=GLOBAL_STATS_ID)
                db.add(row)
            for column, value in values.items():
                setattr(row, column, value)

"""
Scan Coordinator

Orchestrates one domain scan:
1. Cache check (domain scanned within the last 24h -> stored keywords)
2. Single-flight: concurrent requests for the same domain share one fetch
3. Fetch ranked keywords from DataForSEO
4. Parse and score keywords
5. Archive raw response, update domain stats, replace keywords
6. Recompute global stats

Write order matters: keywords are only replaced after the domain row has
been updated, so a failed domain write never leaves new keywords next to
stale counters.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..collector.client import DataForSEOError
from ..errors import UpstreamUnavailableError
from ..scoring.keywords import parse_ranked_keywords, top_keywords

logger = logging.getLogger(__name__)


@dataclass
class DisplayKeyword:
    """Keyword as returned to callers."""
    keyword: str
    search_volume: int
    position: int
    intent: str
    etv: int
    has_ai_overview: bool

    @classmethod
    def from_keyword(cls, kw) -> "DisplayKeyword":
        """Build from a ParsedKeyword or a KeywordRecord."""
        return cls(
            keyword=kw.keyword,
            search_volume=kw.search_volume,
            position=kw.position,
            intent=kw.intent.value,
            etv=kw.etv,
            has_ai_overview=kw.has_ai_overview,
        )


@dataclass
class ScanSummary:
    total: int = 0
    with_overview: int = 0
    without_overview: int = 0


@dataclass
class ScanResult:
    """
    Result of a scan.

    Cache hits and fresh scans have the same shape: the top keywords by
    risk score and a summary counted over those keywords only.
    """
    domain: str
    keywords: List[DisplayKeyword]
    summary: ScanSummary
    cached_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "domain": self.domain,
            "keywords": [vars(kw) for kw in self.keywords],
            "stats": vars(self.summary),
            "cached_at": self.cached_at.isoformat(),
        }


def build_scan_result(domain: str, keywords: Iterable[Any], cached_at: datetime) -> ScanResult:
    display = [DisplayKeyword.from_keyword(kw) for kw in keywords]
    with_overview = sum(1 for kw in display if kw.has_ai_overview)
    return ScanResult(
        domain=domain,
        keywords=display,
        summary=ScanSummary(
            total=len(display),
            with_overview=with_overview,
            without_overview=len(display) - with_overview,
        ),
        cached_at=cached_at,
    )


class ScanCoordinator:
    """
    Runs scans with a 24h cache and per-domain single-flight.

    The in-flight map is owned by the instance; create one coordinator per
    process (or per test).
    """

    def __init__(
        self,
        repository,
        client,
        aggregator,
        cache_ttl: timedelta = timedelta(hours=24),
        display_limit: int = 15,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        """
        Args:
            repository: ScanRepository
            client: Object with `async fetch_ranked_keywords(domain) -> dict`
            aggregator: StatsAggregator
            cache_ttl: How long a scan stays fresh
            display_limit: Keywords returned per result
            clock: Returns the current naive UTC time
        """
        self.repository = repository
        self.client = client
        self.aggregator = aggregator
        self.cache_ttl = cache_ttl
        self.display_limit = display_limit
        self._clock = clock

        self._in_flight: Dict[str, asyncio.Task] = {}

    def in_flight_domains(self) -> List[str]:
        return list(self._in_flight)

    async def scan(self, domain: str, client_ip: Optional[str] = None) -> ScanResult:
        """
        Scan a normalized domain.

        Raises:
            UpstreamUnavailableError: DataForSEO fetch failed
            PersistenceError: A store read or write failed
        """
        cached = await self._cached_result(domain)
        if cached is not None:
            return cached

        # No await between lookup and registration: the check-then-act is atomic
        task = self._in_flight.get(domain)
        if task is not None:
            logger.info(f"Joining in-flight scan for {domain}")
        else:
            logger.info(f"Cache miss for {domain}, starting scan")
            task = asyncio.create_task(self._run_scan(domain, client_ip))
            self._in_flight[domain] = task
            task.add_done_callback(lambda t: self._clear_in_flight(domain, t))

        # A caller giving up must not cancel the scan other callers wait on
        return await asyncio.shield(task)

    def _clear_in_flight(self, domain: str, task: asyncio.Task) -> None:
        if self._in_flight.get(domain) is task:
            del self._in_flight[domain]
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"Scan for {domain} failed: {task.exception()}")

    async def _cached_result(self, domain: str) -> Optional[ScanResult]:
        fresh_since = self._clock() - self.cache_ttl
        record = await asyncio.to_thread(self.repository.get_cached_domain, domain, fresh_since)
        if record is None:
            return None

        logger.info(f"Cache hit for {domain} (scanned {record.last_scanned_at.isoformat()})")
        keywords = await asyncio.to_thread(
            self.repository.get_keywords_by_domain, domain, self.display_limit
        )
        return build_scan_result(domain, keywords, record.last_scanned_at)

    async def _run_scan(self, domain: str, client_ip: Optional[str]) -> ScanResult:
        try:
            raw_response = await self.client.fetch_ranked_keywords(domain)
        except DataForSEOError as e:
            logger.error(f"DataForSEO fetch failed for {domain}: {e}")
            raise UpstreamUnavailableError(str(e), status_code=e.status_code) from e

        parsed = parse_ranked_keywords(raw_response)
        logger.info(
            f"Parsed {parsed.stats.total} keywords for {domain}, "
            f"{parsed.stats.with_overview} with AI Overview"
        )

        scanned_at = self._clock()
        scan_id = await asyncio.to_thread(
            self.repository.insert_scan, domain, raw_response, client_ip, scanned_at
        )
        await asyncio.to_thread(
            self.repository.upsert_domain, domain, scan_id, parsed.stats, scanned_at
        )
        await asyncio.to_thread(
            self.repository.replace_keywords, domain, scan_id, parsed.keywords, scanned_at
        )
        await self.aggregator.recompute()

        logger.info(f"Stored scan {scan_id} for {domain}")
        return build_scan_result(
            domain,
            top_keywords(parsed.keywords, self.display_limit),
            scanned_at,
        )

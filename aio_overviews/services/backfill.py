"""
Archive Backfill

Rebuilds the domains, keywords and stats tables from the scans archive.
Each domain is rebuilt from its most recent archived scan; first_scanned_at
comes from its oldest one, replacing whatever an existing row held.

Used after a schema change or when derived tables were lost. Safe to run
repeatedly: every step replaces rather than increments.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from ..errors import PersistenceError
from ..scoring.keywords import parse_ranked_keywords
from .stats import GlobalStatsSnapshot, compute_global_stats

logger = logging.getLogger(__name__)


@dataclass
class BackfillReport:
    """Outcome of one rebuild run."""
    domains_processed: int = 0
    keywords_stored: int = 0
    failed_domains: List[str] = field(default_factory=list)
    stats: Optional[GlobalStatsSnapshot] = None

    @property
    def failed(self) -> int:
        return len(self.failed_domains)


def rebuild_from_archive(repository, updated_at: Optional[datetime] = None) -> BackfillReport:
    """
    Re-parse the latest archived scan of every domain.

    A domain that fails to store is logged and skipped; the global stats
    are still recomputed from whatever domains were rebuilt.
    """
    report = BackfillReport()

    for scan, first_at in repository.iter_latest_scans():
        domain = scan.domain
        try:
            parsed = parse_ranked_keywords(scan.raw_response)
            repository.upsert_domain(
                domain,
                scan.id,
                parsed.stats,
                scanned_at=scan.created_at,
                first_scanned_at=first_at,
            )
            report.keywords_stored += repository.replace_keywords(
                domain, scan.id, parsed.keywords, created_at=scan.created_at
            )
        except PersistenceError as e:
            logger.error(f"Backfill failed for {domain}: {e}")
            report.failed_domains.append(domain)
            continue

        report.domains_processed += 1
        logger.info(
            f"Rebuilt {domain}: {parsed.stats.total} keywords, "
            f"{parsed.stats.with_overview} with AI Overview"
        )

    snapshot = compute_global_stats(repository.get_all_domains(), updated_at=updated_at)
    repository.save_global_stats(snapshot.to_dict())
    report.stats = snapshot

    logger.info(
        f"Backfill complete: {report.domains_processed} domains, "
        f"{report.keywords_stored} keywords, {report.failed} failed"
    )
    return report

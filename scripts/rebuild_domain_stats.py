#!/usr/bin/env python3
"""
Rebuild Domain Stats

Re-parses the latest archived scan of every domain and rebuilds the
domains, keywords and stats tables. Run after a parser or schema change.

Usage:
    python scripts/rebuild_domain_stats.py
    python scripts/rebuild_domain_stats.py --database-url sqlite:///aio.db
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

from aio_overviews.database import ScanRepository, create_db_engine, create_session_factory, init_db
from aio_overviews.services import rebuild_from_archive

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Rebuild domain, keyword and global stats from the scans archive")
    parser.add_argument("--database-url", default=None, help="Overrides DATABASE_URL")
    args = parser.parse_args()

    load_dotenv()

    engine = create_db_engine(args.database_url)
    init_db(engine)
    repository = ScanRepository(create_session_factory(engine))

    report = rebuild_from_archive(repository)

    logger.info("=" * 60)
    logger.info(f"Domains rebuilt: {report.domains_processed}")
    logger.info(f"Keywords stored: {report.keywords_stored}")
    logger.info(f"Failed domains:  {report.failed}")
    if report.stats:
        logger.info(
            f"Global stats: {report.stats.total_domains} domains, "
            f"{report.stats.total_keywords} rankings, "
            f"{report.stats.avg_overview_percent}% with AI Overview"
        )

    if report.failed:
        for domain in report.failed_domains:
            logger.error(f"  - {domain}")
        sys.exit(1)


if __name__ == "__main__":
    main()

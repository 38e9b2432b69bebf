#!/usr/bin/env python3
"""
Single Domain Scan

Runs one AI Overview scan from the command line with the same cache,
single-flight and persistence rules as POST /api/check, and prints the
result as JSON. No rate limiting is applied.

Usage:
    # Set environment variables first:
    export DATAFORSEO_LOGIN=your_login
    export DATAFORSEO_PASSWORD=your_password

    python scripts/run_scan.py example.com
    python scripts/run_scan.py https://www.example.com/blog --limit 5
"""

import asyncio
import argparse
import json
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

from aio_overviews.collector import create_client
from aio_overviews.database import ScanRepository, create_db_engine, create_session_factory, init_db
from aio_overviews.errors import ScanError
from aio_overviews.services import ScanCoordinator, StatsAggregator
from aio_overviews.utils import get_settings, normalize_domain


def setup_logging(verbose: bool = False):
    """Configure logging."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


async def run_scan(domain: str, limit: int = None) -> dict:
    """Scan one domain and return the JSON-ready result."""
    settings = get_settings()

    engine = create_db_engine()
    init_db(engine)
    repository = ScanRepository(create_session_factory(engine))

    async with create_client(settings) as client:
        coordinator = ScanCoordinator(
            repository,
            client,
            StatsAggregator(repository),
            cache_ttl=settings.cache_ttl,
            display_limit=limit or settings.DISPLAY_KEYWORD_LIMIT,
        )
        result = await coordinator.scan(normalize_domain(domain))

    return result.to_dict()


def main():
    parser = argparse.ArgumentParser(description="Check a domain's AI Overview exposure")
    parser.add_argument("domain", help="Domain or URL to scan")
    parser.add_argument("--limit", type=int, default=None, help="Keywords to print")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    load_dotenv()
    setup_logging(args.verbose)

    try:
        result = asyncio.run(run_scan(args.domain, args.limit))
    except ScanError as e:
        print(json.dumps(e.to_dict(), indent=2))
        sys.exit(1)

    print(json.dumps(result, indent=2))


if __name__ == "__main__":
    main()

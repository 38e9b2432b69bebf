"""
Tests for the Scan Coordinator

Tests:
- Cache hit / miss / expiry
- Single-flight for concurrent requests
- Failure propagation and in-flight cleanup
- Persistence of domains, keywords and global stats
"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from aio_overviews.collector import DataForSEOError
from aio_overviews.errors import PersistenceError, UpstreamUnavailableError
from aio_overviews.scoring.keywords import parse_ranked_keywords
from aio_overviews.services.scanner import ScanCoordinator
from aio_overviews.services.stats import StatsAggregator

from conftest import FakeClient, make_item, make_response


@pytest.fixture
def aggregator(repository, clock):
    return StatsAggregator(repository, clock=clock)


@pytest.fixture
def make_coordinator(repository, aggregator, clock):
    def _make(client, **kwargs):
        return ScanCoordinator(repository, client, aggregator, clock=clock, **kwargs)
    return _make


def seed_domain(repository, domain, response, scanned_at):
    """Store a scan the way a completed fresh scan would."""
    parsed = parse_ranked_keywords(response)
    scan_id = repository.insert_scan(domain, response, None, created_at=scanned_at)
    repository.upsert_domain(domain, scan_id, parsed.stats, scanned_at)
    repository.replace_keywords(domain, scan_id, parsed.keywords, created_at=scanned_at)


@pytest.mark.asyncio
class TestFreshScan:
    """Test the cache miss path."""

    async def test_result_shape(self, make_coordinator, fake_client, clock):
        coordinator = make_coordinator(fake_client)

        result = await coordinator.scan("example.com")

        assert result.domain == "example.com"
        assert result.cached_at == clock.now
        assert [kw.keyword for kw in result.keywords] == [
            "what is crm", "best crm software", "acme crm login", "buy crm license",
        ]
        assert result.summary.total == 4
        assert result.summary.with_overview == 2
        assert result.summary.without_overview == 2
        assert result.keywords[0].intent == "informational"

    async def test_persists_scan_domain_keywords_and_stats(self, make_coordinator, fake_client, repository, clock):
        coordinator = make_coordinator(fake_client)

        await coordinator.scan("example.com", client_ip="203.0.113.7")

        assert repository.get_scan_times_since("203.0.113.7", clock.now - timedelta(hours=1)) == [clock.now]

        record = repository.get_domain("example.com")
        assert record.keywords_analyzed == 4
        assert record.keywords_with_overview + record.keywords_without_overview == record.keywords_analyzed
        assert (
            record.intent_informational + record.intent_commercial
            + record.intent_transactional + record.intent_navigational
        ) == record.keywords_analyzed
        assert record.overview_search_volume <= record.total_search_volume
        assert record.first_scanned_at == record.last_scanned_at == clock.now

        assert len(repository.get_keywords_by_domain("example.com")) == 4

        stats = repository.get_global_stats()
        assert stats.total_domains == 1
        assert stats.total_keywords == 4
        assert stats.keywords_with_overview == 2

    async def test_summary_counts_displayed_keywords_only(self, make_coordinator):
        items = [make_item(f"kw{i}", 100 * i, 1, has_ai_overview=(i % 2 == 0)) for i in range(1, 31)]
        coordinator = make_coordinator(FakeClient(response=make_response(items)), display_limit=15)

        result = await coordinator.scan("example.com")

        assert len(result.keywords) == 15
        assert result.summary.total == 15
        assert result.summary.with_overview + result.summary.without_overview == 15

    async def test_empty_response_is_a_result(self, make_coordinator, repository):
        coordinator = make_coordinator(FakeClient(response={"status_code": 20000, "tasks": []}))

        result = await coordinator.scan("example.com")

        assert result.keywords == []
        assert result.summary.total == 0
        assert repository.get_domain("example.com").keywords_analyzed == 0


@pytest.mark.asyncio
class TestCache:
    """Test the 24h cache."""

    async def test_fresh_cache_skips_fetch(self, make_coordinator, fake_client, repository, sample_response, clock):
        seed_domain(repository, "example.com", sample_response, clock.now - timedelta(hours=1))
        coordinator = make_coordinator(fake_client)

        result = await coordinator.scan("example.com")

        assert fake_client.calls == []
        assert result.cached_at == clock.now - timedelta(hours=1)
        assert result.summary.total == 4
        assert result.keywords[0].keyword == "what is crm"

    async def test_expired_cache_fetches_once(self, make_coordinator, fake_client, repository, sample_response, clock):
        seed_domain(repository, "example.com", sample_response, clock.now - timedelta(hours=25))
        coordinator = make_coordinator(fake_client)

        result = await coordinator.scan("example.com")

        assert fake_client.calls == ["example.com"]
        assert result.cached_at == clock.now

    async def test_rescan_preserves_first_scanned_at(self, make_coordinator, fake_client, repository, sample_response, clock):
        first = clock.now - timedelta(days=3)
        seed_domain(repository, "example.com", sample_response, first)
        coordinator = make_coordinator(fake_client)

        await coordinator.scan("example.com")

        record = repository.get_domain("example.com")
        assert record.first_scanned_at == first
        assert record.last_scanned_at == clock.now

    async def test_rescan_replaces_keywords(self, make_coordinator, repository, sample_response, clock):
        seed_domain(repository, "example.com", sample_response, clock.now - timedelta(hours=30))
        client = FakeClient(response=make_response([make_item("only one")]))
        coordinator = make_coordinator(client)

        await coordinator.scan("example.com")

        keywords = repository.get_keywords_by_domain("example.com")
        assert [kw.keyword for kw in keywords] == ["only one"]
        assert repository.get_global_stats().total_keywords == 1

    async def test_second_scan_served_from_cache(self, make_coordinator, fake_client, clock):
        coordinator = make_coordinator(fake_client)

        await coordinator.scan("example.com")
        clock.advance(hours=2)
        await coordinator.scan("example.com")

        assert fake_client.calls == ["example.com"]


@pytest.mark.asyncio
class TestSingleFlight:
    """Test request deduplication."""

    async def test_concurrent_scans_share_one_fetch(self, make_coordinator, sample_response):
        client = FakeClient(response=sample_response, delay=0.05)
        coordinator = make_coordinator(client)

        results = await asyncio.gather(*[coordinator.scan("example.com") for _ in range(5)])

        assert client.calls == ["example.com"]
        assert all(r.keywords == results[0].keywords for r in results)
        assert coordinator.in_flight_domains() == []

    async def test_different_domains_fetch_separately(self, make_coordinator, sample_response):
        client = FakeClient(response=sample_response, delay=0.01)
        coordinator = make_coordinator(client)

        await asyncio.gather(coordinator.scan("a.com"), coordinator.scan("b.com"))

        assert sorted(client.calls) == ["a.com", "b.com"]

    async def test_failure_propagates_to_every_waiter(self, make_coordinator):
        client = FakeClient(error=DataForSEOError("boom"), delay=0.05)
        coordinator = make_coordinator(client)

        results = await asyncio.gather(
            *[coordinator.scan("example.com") for _ in range(3)],
            return_exceptions=True,
        )

        assert client.calls == ["example.com"]
        assert all(isinstance(r, UpstreamUnavailableError) for r in results)
        assert coordinator.in_flight_domains() == []

    async def test_retry_after_failure_starts_new_fetch(self, make_coordinator, failing_client, sample_response):
        coordinator = make_coordinator(failing_client)

        with pytest.raises(UpstreamUnavailableError):
            await coordinator.scan("example.com")

        failing_client.error = None
        failing_client.response = sample_response
        result = await coordinator.scan("example.com")

        assert failing_client.calls == ["example.com", "example.com"]
        assert result.summary.total == 4

    async def test_cancelled_caller_does_not_cancel_shared_scan(self, make_coordinator, sample_response):
        client = FakeClient(response=sample_response, delay=0.05)
        coordinator = make_coordinator(client)

        first = asyncio.create_task(coordinator.scan("example.com"))
        second = asyncio.create_task(coordinator.scan("example.com"))
        await asyncio.sleep(0.01)
        first.cancel()

        result = await second

        assert result.summary.total == 4
        assert client.calls == ["example.com"]
        with pytest.raises(asyncio.CancelledError):
            await first


@pytest.mark.asyncio
class TestFailures:
    """Test error mapping and write ordering."""

    async def test_upstream_failure_persists_nothing(self, make_coordinator, failing_client, repository):
        coordinator = make_coordinator(failing_client)

        with pytest.raises(UpstreamUnavailableError) as exc_info:
            await coordinator.scan("example.com", client_ip="203.0.113.7")

        assert exc_info.value.category == "upstream_unavailable"
        assert exc_info.value.status_code == 503
        assert repository.get_domain("example.com") is None
        assert repository.get_keywords_by_domain("example.com") == []
        assert repository.get_global_stats() is None
        assert list(repository.iter_latest_scans()) == []

    async def test_domain_write_failure_skips_keywords(self, fake_client, clock):
        repository = MagicMock()
        repository.get_cached_domain.return_value = None
        repository.insert_scan.return_value = "scan-id"
        repository.upsert_domain.side_effect = PersistenceError("Failed to save domain")
        aggregator = MagicMock()
        aggregator.recompute = AsyncMock()
        coordinator = ScanCoordinator(repository, fake_client, aggregator, clock=clock)

        with pytest.raises(PersistenceError) as exc_info:
            await coordinator.scan("example.com")

        assert exc_info.value.category == "persistence_failure"
        repository.replace_keywords.assert_not_called()
        aggregator.recompute.assert_not_awaited()
        assert coordinator.in_flight_domains() == []

    async def test_keyword_write_failure_surfaces_and_clears_handle(self, fake_client, clock):
        repository = MagicMock()
        repository.get_cached_domain.return_value = None
        repository.insert_scan.return_value = "scan-id"
        repository.replace_keywords.side_effect = PersistenceError("Failed to replace keywords")
        aggregator = MagicMock()
        aggregator.recompute = AsyncMock()
        coordinator = ScanCoordinator(repository, fake_client, aggregator, clock=clock)

        with pytest.raises(PersistenceError) as exc_info:
            await coordinator.scan("example.com")

        assert exc_info.value.category == "persistence_failure"
        repository.upsert_domain.assert_called_once()
        aggregator.recompute.assert_not_awaited()
        assert coordinator.in_flight_domains() == []

    async def test_stats_recompute_failure_surfaces_and_clears_handle(self, fake_client, repository, clock):
        aggregator = MagicMock()
        aggregator.recompute = AsyncMock(side_effect=PersistenceError("Failed to update stats"))
        coordinator = ScanCoordinator(repository, fake_client, aggregator, clock=clock)

        with pytest.raises(PersistenceError) as exc_info:
            await coordinator.scan("example.com")

        assert exc_info.value.http_status == 500
        assert coordinator.in_flight_domains() == []
        # Domain and keyword writes completed before the stats failure
        assert repository.get_domain("example.com").keywords_analyzed == 4
        assert len(repository.get_keywords_by_domain("example.com")) == 4

    async def test_persistence_failure_shared_by_concurrent_callers(self, sample_response, clock):
        repository = MagicMock()
        repository.get_cached_domain.return_value = None
        repository.insert_scan.return_value = "scan-id"
        repository.replace_keywords.side_effect = PersistenceError("Failed to replace keywords")
        aggregator = MagicMock()
        aggregator.recompute = AsyncMock()
        client = FakeClient(response=sample_response, delay=0.05)
        coordinator = ScanCoordinator(repository, client, aggregator, clock=clock)

        results = await asyncio.gather(
            *[coordinator.scan("example.com") for _ in range(3)],
            return_exceptions=True,
        )

        assert client.calls == ["example.com"]
        assert all(isinstance(r, PersistenceError) for r in results)
        assert coordinator.in_flight_domains() == []

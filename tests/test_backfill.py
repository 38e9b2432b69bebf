"""
Tests for rebuilding derived tables from the scans archive
"""

from datetime import timedelta
from unittest.mock import patch

from aio_overviews.errors import PersistenceError
from aio_overviews.scoring.keywords import KeywordStats
from aio_overviews.services.backfill import rebuild_from_archive

from conftest import make_item, make_response


class TestRebuildFromArchive:

    def test_rebuilds_from_latest_scan(self, repository, clock):
        first = clock.now - timedelta(days=10)
        repository.insert_scan("a.com", make_response([make_item("old")]), None, created_at=first)
        repository.insert_scan("a.com", make_response([
            make_item("new1", has_ai_overview=True),
            make_item("new2", has_ai_overview=False, intent="commercial"),
        ]), None, created_at=clock.now)
        repository.insert_scan("b.com", make_response([]), None, created_at=clock.now)

        report = rebuild_from_archive(repository, updated_at=clock.now)

        assert report.domains_processed == 2
        assert report.keywords_stored == 2
        assert report.failed == 0

        record = repository.get_domain("a.com")
        assert record.keywords_analyzed == 2
        assert record.keywords_with_overview == 1
        assert record.intent_commercial == 1
        assert record.first_scanned_at == first
        assert record.last_scanned_at == clock.now
        assert sorted(kw.keyword for kw in repository.get_keywords_by_domain("a.com")) == ["new1", "new2"]

        stats = repository.get_global_stats()
        assert stats.total_domains == 2
        assert stats.total_keywords == 2
        assert stats.updated_at == clock.now

    def test_idempotent(self, repository, clock):
        repository.insert_scan("a.com", make_response([make_item("kw")]), None, created_at=clock.now)

        rebuild_from_archive(repository, updated_at=clock.now)
        report = rebuild_from_archive(repository, updated_at=clock.now)

        assert report.keywords_stored == 1
        assert len(repository.get_keywords_by_domain("a.com")) == 1
        assert repository.get_global_stats().total_keywords == 1

    def test_domain_failure_is_counted_not_fatal(self, repository, clock):
        repository.insert_scan("a.com", make_response([make_item("a")]), None, created_at=clock.now)
        repository.insert_scan("b.com", make_response([make_item("b")]), None, created_at=clock.now)

        original = repository.replace_keywords

        def flaky(domain, *args, **kwargs):
            if domain == "a.com":
                raise PersistenceError("Failed to replace keywords")
            return original(domain, *args, **kwargs)

        with patch.object(repository, "replace_keywords", side_effect=flaky):
            report = rebuild_from_archive(repository, updated_at=clock.now)

        assert report.failed_domains == ["a.com"]
        assert report.domains_processed == 1
        assert repository.get_global_stats().total_domains == 2

    def test_empty_archive(self, repository, clock):
        report = rebuild_from_archive(repository, updated_at=clock.now)

        assert report.domains_processed == 0
        assert report.stats.total_domains == 0
        assert repository.get_global_stats().total_domains == 0

    def test_archive_first_scan_overrides_existing_row(self, repository, clock):
        first = clock.now - timedelta(days=20)
        repository.insert_scan("a.com", make_response([make_item("kw")]), None, created_at=first)
        repository.insert_scan("a.com", make_response([make_item("kw")]), None, created_at=clock.now)
        repository.upsert_domain("a.com", None, KeywordStats(), clock.now - timedelta(days=1))

        rebuild_from_archive(repository, updated_at=clock.now)

        record = repository.get_domain("a.com")
        assert record.first_scanned_at == first
        assert record.keywords_analyzed == 1

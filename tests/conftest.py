"""
Pytest Configuration and Shared Fixtures

Provides common fixtures and configuration for all test modules.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import pytest

from aio_overviews.collector import DataForSEOError
from aio_overviews.database import (
    ScanRepository,
    create_db_engine,
    create_session_factory,
    init_db,
)


# ============================================================================
# Clock
# ============================================================================

class FakeClock:
    """Controllable naive UTC clock."""

    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime(2025, 3, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def engine(tmp_path):
    """SQLite file database (worker threads need their own connections)."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'test.db'}", echo=False)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def repository(engine) -> ScanRepository:
    return ScanRepository(create_session_factory(engine))


# ============================================================================
# Mock Data Fixtures
# ============================================================================

def make_item(
    keyword: str,
    search_volume: int = 1000,
    position: int = 1,
    intent: str = "informational",
    etv: float = 100.0,
    has_ai_overview: bool = True,
) -> Dict[str, Any]:
    """One ranked keyword item in DataForSEO shape."""
    serp_item_types = ["organic", "people_also_ask"]
    if has_ai_overview:
        serp_item_types.insert(0, "ai_overview")

    return {
        "keyword_data": {
            "keyword": keyword,
            "keyword_info": {"search_volume": search_volume},
            "search_intent_info": {"main_intent": intent},
            "serp_info": {"serp_item_types": serp_item_types},
        },
        "ranked_serp_element": {
            "serp_item": {"rank_absolute": position, "etv": etv},
        },
    }


def make_response(items: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Full ranked keywords response wrapping `items`."""
    return {
        "status_code": 20000,
        "status_message": "Ok.",
        "tasks": [{
            "status_code": 20000,
            "status_message": "Ok.",
            "result": [{"total_count": len(items), "items": items}],
        }],
    }


@pytest.fixture
def sample_response() -> Dict[str, Any]:
    """Four keywords: two with AI Overview, mixed intents."""
    return make_response([
        make_item("what is crm", 5000, 3, "informational", 420.5, True),
        make_item("best crm software", 2400, 5, "commercial", 180.0, True),
        make_item("buy crm license", 800, 2, "transactional", 95.2, False),
        make_item("acme crm login", 1200, 1, "navigational", 950.0, False),
    ])


class FakeClient:
    """Stands in for DataForSEOClient."""

    def __init__(self, response: Optional[Dict[str, Any]] = None, error: Optional[Exception] = None, delay: float = 0):
        self.response = response
        self.error = error
        self.delay = delay
        self.calls: List[str] = []

    async def fetch_ranked_keywords(self, domain: str) -> Dict[str, Any]:
        self.calls.append(domain)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def fake_client(sample_response) -> FakeClient:
    return FakeClient(response=sample_response)


@pytest.fixture
def failing_client() -> FakeClient:
    return FakeClient(error=DataForSEOError("API request failed: 503 Service Unavailable", status_code=503))


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )

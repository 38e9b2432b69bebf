"""
Database Layer

Four tables: scans (raw archive), domains, keywords, stats.

Usage:
    from aio_overviews.database import (
        create_db_engine, create_session_factory, init_db, ScanRepository,
    )

    engine = create_db_engine("sqlite:///aio.db")
    init_db(engine)
    repo = ScanRepository(create_session_factory(engine))
"""

# Models
from .models import (
    Base,
    GLOBAL_STATS_ID,
    ScanArchive,
    DomainRecord,
    KeywordRecord,
    GlobalStats,
)

# Session management
from .session import (
    get_database_url,
    create_db_engine,
    create_session_factory,
    get_engine,
    get_session_factory,
    session_scope,
    init_db,
    check_db_connection,
)

# Repository
from .repository import ScanRepository

__all__ = [
    # Models
    "Base",
    "GLOBAL_STATS_ID",
    "ScanArchive",
    "DomainRecord",
    "KeywordRecord",
    "GlobalStats",
    # Session
    "get_database_url",
    "create_db_engine",
    "create_session_factory",
    "get_engine",
    "get_session_factory",
    "session_scope",
    "init_db",
    "check_db_connection",
    # Repository
    "ScanRepository",
]

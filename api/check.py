"""
API Endpoint for AI Overview Exposure Checks

FastAPI app that:
1. Rate limits scans per client address (10 per 24h)
2. Normalizes and validates the submitted domain
3. Returns cached keywords or runs a fresh DataForSEO scan
4. Serves global stats for the landing and insights pages
"""

import asyncio
import logging
import sys
from datetime import datetime
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from aio_overviews import __version__
from aio_overviews.collector import create_client
from aio_overviews.database import (
    ScanRepository,
    check_db_connection,
    create_db_engine,
    create_session_factory,
    init_db,
)
from aio_overviews.errors import InvalidDomainError, RateLimitedError, ScanError
from aio_overviews.services import (
    ANONYMOUS_IDENTITY,
    ScanCoordinator,
    ScanRateLimiter,
    StatsAggregator,
    build_stats_view,
    resolve_identity,
)
from aio_overviews.utils import get_settings, normalize_domain

# Configure logging to stdout (hosting platforms treat stderr as errors)
logging.basicConfig(
    level=getattr(logging, get_settings().LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stdout,
    force=True,
)
logger = logging.getLogger(__name__)

# Quiet down chatty loggers
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


# ============================================================================
# REQUEST/RESPONSE MODELS
# ============================================================================

class CheckRequest(BaseModel):
    """Domain to check. Accepts URLs; scheme, www. and path are stripped."""
    domain: Optional[str] = None


class KeywordResponse(BaseModel):
    keyword: str
    search_volume: int
    position: int
    intent: str
    etv: int
    has_ai_overview: bool


class SummaryResponse(BaseModel):
    total: int
    with_overview: int
    without_overview: int


class CheckResponse(BaseModel):
    """Top keywords by risk plus counts over those keywords."""
    domain: str
    keywords: List[KeywordResponse]
    stats: SummaryResponse
    cached_at: datetime


# ============================================================================
# HELPERS
# ============================================================================

def get_client_ip(request: Request) -> str:
    """
    Resolve the client address used for rate limiting.

    Order: first X-Forwarded-For entry, X-Real-IP, socket peer, anonymous.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()

    if request.client and request.client.host:
        return request.client.host

    return ANONYMOUS_IDENTITY


def error_response(error: ScanError) -> JSONResponse:
    headers = {}
    if isinstance(error, RateLimitedError):
        headers["Retry-After"] = str(error.retry_after_seconds)
    return JSONResponse(status_code=error.http_status, content=error.to_dict(), headers=headers)


# ============================================================================
# APP FACTORY
# ============================================================================

def create_app(
    limiter: Optional[ScanRateLimiter] = None,
    coordinator: Optional[ScanCoordinator] = None,
    aggregator: Optional[StatsAggregator] = None,
    engine=None,
) -> FastAPI:
    """
    Build the API app.

    Services left as None are wired from settings on startup.
    """
    app = FastAPI(
        title="AI Overview Checker",
        description="Checks how exposed a domain's ranking keywords are to Google AI Overviews",
        version=__version__,
    )

    app.state.limiter = limiter
    app.state.coordinator = coordinator
    app.state.aggregator = aggregator
    app.state.engine = engine
    app.state.client = None

    @app.on_event("startup")
    async def startup_event():
        """Initialize database and services on startup."""
        if app.state.coordinator is not None:
            return

        settings = get_settings()
        logger.info("Initializing database...")
        app.state.engine = app.state.engine or create_db_engine()
        init_db(app.state.engine)

        repository = ScanRepository(create_session_factory(app.state.engine))
        app.state.client = create_client(settings)
        if not app.state.client.has_credentials:
            logger.warning("DataForSEO credentials missing - fresh scans will fail")

        app.state.aggregator = app.state.aggregator or StatsAggregator(repository)
        app.state.limiter = app.state.limiter or ScanRateLimiter(
            repository,
            max_scans=settings.RATE_LIMIT_MAX_SCANS,
            window=settings.rate_limit_window,
        )
        app.state.coordinator = ScanCoordinator(
            repository,
            app.state.client,
            app.state.aggregator,
            cache_ttl=settings.cache_ttl,
            display_limit=settings.DISPLAY_KEYWORD_LIMIT,
        )
        logger.info("Scan services ready")

    @app.on_event("shutdown")
    async def shutdown_event():
        if app.state.client is not None:
            await app.state.client.close()

    @app.exception_handler(ScanError)
    async def scan_error_handler(request: Request, exc: ScanError):
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return error_response(InvalidDomainError("Domain is required"))

    # ------------------------------------------------------------------------
    # ENDPOINTS
    # ------------------------------------------------------------------------

    @app.post("/api/check", response_model=CheckResponse)
    async def check_domain(body: CheckRequest, request: Request):
        """
        Check a domain's AI Overview exposure.

        Errors:
            400 invalid_format, 429 rate_limited, 502 upstream_unavailable,
            500 persistence_failure / internal_error
        """
        client_ip = get_client_ip(request)
        await app.state.limiter.check(client_ip)

        domain = normalize_domain(body.domain)
        identity = resolve_identity(client_ip)
        archived_ip = None if identity == ANONYMOUS_IDENTITY else identity

        try:
            result = await app.state.coordinator.scan(domain, client_ip=archived_ip)
        except ScanError:
            raise
        except Exception as e:
            logger.exception(f"Unexpected error scanning {domain}: {e}")
            raise ScanError("Failed to analyze domain") from e

        return result.to_dict()

    @app.get("/api/stats")
    async def get_stats():
        """Global stats view (all zeros before the first scan)."""
        snapshot = await app.state.aggregator.get_snapshot()
        return build_stats_view(snapshot)

    @app.get("/api/health")
    async def health():
        """Health check including database status."""
        db_connected = False
        if app.state.engine is not None:
            db_connected = await asyncio.to_thread(check_db_connection, app.state.engine)

        coordinator = app.state.coordinator
        return {
            "status": "healthy",
            "timestamp": datetime.utcnow().isoformat(),
            "version": __version__,
            "scans_in_flight": len(coordinator.in_flight_domains()) if coordinator else 0,
            "database": "connected" if db_connected else "disconnected",
        }

    return app


app = create_app()


# ============================================================================
# RUN SERVER
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.check:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )

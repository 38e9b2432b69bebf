"""
Scan Rate Limiting

Limits scans per client address over a rolling window (10 per 24h by default).

Two tiers:
- Volatile: in-process admission timestamps per identity, pruned on each check
- Durable: the scans archive, consulted only when the volatile tier has no
  recent admissions for an identity (e.g. after a restart)

The durable tier fails open: a read error is logged and the request admitted.
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from ..errors import RateLimitedError

logger = logging.getLogger(__name__)

ANONYMOUS_IDENTITY = "anonymous"
_ANONYMOUS_VALUES = {"", "unknown", ANONYMOUS_IDENTITY}


@dataclass
class RateLimitDecision:
    """Outcome of one admission check."""
    allowed: bool
    retry_after_seconds: Optional[int] = None

    @property
    def retry_after_hours(self) -> Optional[int]:
        if self.retry_after_seconds is None:
            return None
        return math.ceil(self.retry_after_seconds / 3600)


def resolve_identity(identity: Optional[str]) -> str:
    """Map missing or unresolvable client addresses to one shared bucket."""
    if identity is None:
        return ANONYMOUS_IDENTITY
    identity = identity.strip()
    if identity.lower() in _ANONYMOUS_VALUES:
        return ANONYMOUS_IDENTITY
    return identity


class ScanRateLimiter:
    """
    Sliding window limiter for scan requests.

    Each identity gets its own lock so the check-then-record step is atomic
    against concurrent requests from the same client, while different
    clients never wait on each other's durable lookups.

    Locks live only while a request for the identity is in progress, and
    identities whose admissions have all left the window are swept, so
    memory tracks recently active clients only.
    """

    def __init__(
        self,
        repository=None,
        max_scans: int = 10,
        window: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = datetime.utcnow,
        sweep_interval: timedelta = timedelta(minutes=10),
    ):
        """
        Args:
            repository: ScanRepository for the durable tier (None disables it)
            max_scans: Admissions allowed per identity per window
            window: Rolling window length
            clock: Returns the current naive UTC time
            sweep_interval: Minimum time between sweeps of expired identities
        """
        self.repository = repository
        self.max_scans = max_scans
        self.window = window
        self.sweep_interval = sweep_interval
        self._clock = clock

        self._admissions: Dict[str, List[datetime]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}
        self._last_sweep: Optional[datetime] = None

    async def admit(self, identity: Optional[str]) -> RateLimitDecision:
        """Record an admission for `identity` if it is under the limit."""
        key = resolve_identity(identity)

        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._lock_users[key] = self._lock_users.get(key, 0) + 1

        try:
            async with lock:
                return await self._admit_locked(key)
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._locks[key]

    async def _admit_locked(self, key: str) -> RateLimitDecision:
        now = self._clock()
        window_start = now - self.window
        self._sweep(now, window_start)

        recent = [ts for ts in self._admissions.get(key, []) if ts > window_start]

        if not recent and key != ANONYMOUS_IDENTITY:
            recent = await self._load_durable(key, window_start)

        if len(recent) >= self.max_scans:
            self._admissions[key] = recent
            retry_after = (min(recent) + self.window) - now
            seconds = max(1, math.ceil(retry_after.total_seconds()))
            logger.info(f"Rate limit reached for {key}: {len(recent)} scans, retry in {seconds}s")
            return RateLimitDecision(allowed=False, retry_after_seconds=seconds)

        recent.append(now)
        self._admissions[key] = recent
        return RateLimitDecision(allowed=True)

    def _sweep(self, now: datetime, window_start: datetime) -> None:
        """Drop identities whose newest admission has left the window."""
        if self._last_sweep is not None and now - self._last_sweep < self.sweep_interval:
            return
        self._last_sweep = now

        expired = [key for key, times in self._admissions.items() if not times or times[-1] <= window_start]
        for key in expired:
            del self._admissions[key]
        if expired:
            logger.debug(f"Swept {len(expired)} idle rate limit identities")

    def tracked_identities(self) -> int:
        """Identities currently holding admission state."""
        return len(self._admissions)

    async def check(self, identity: Optional[str]) -> None:
        """Admit or raise RateLimitedError."""
        decision = await self.admit(identity)
        if not decision.allowed:
            raise RateLimitedError(decision.retry_after_seconds, self.max_scans)

    async def _load_durable(self, key: str, window_start: datetime) -> List[datetime]:
        if self.repository is None:
            return []

        try:
            times = await asyncio.to_thread(self.repository.get_scan_times_since, key, window_start)
        except Exception as e:
            logger.warning(f"Rate limit lookup failed for {key}, allowing request: {e}")
            return []

        if times:
            logger.debug(f"Seeded rate limit for {key} with {len(times)} archived scans")
        return sorted(times)

    def remaining(self, identity: Optional[str]) -> int:
        """Admissions left in the current window (volatile tier only)."""
        key = resolve_identity(identity)
        window_start = self._clock() - self.window
        recent = [ts for ts in self._admissions.get(key, []) if ts > window_start]
        return max(0, self.max_scans - len(recent))

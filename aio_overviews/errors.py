"""
Scan Errors

Every failure a scan request can surface maps to one stable,
machine-readable category plus a human-readable message.
"""

import math
from typing import Any, Dict, Optional


class ScanError(Exception):
    """Base class for errors returned to callers of the scan API."""

    category = "internal_error"
    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for API responses."""
        return {"error": self.category, "message": self.message}


class InvalidDomainError(ScanError):
    """Domain input failed validation. Never retried."""

    category = "invalid_format"
    http_status = 400

    def __init__(self, message: str = "Invalid domain format", value: Optional[str] = None):
        super().__init__(message)
        self.value = value


class RateLimitedError(ScanError):
    """Scan quota for a client identity is exhausted."""

    category = "rate_limited"
    http_status = 429

    def __init__(self, retry_after_seconds: int, max_scans: int):
        self.retry_after_seconds = max(1, int(retry_after_seconds))
        self.max_scans = max_scans
        super().__init__(
            f"You've scanned {max_scans} domains today. "
            f"Try again in {self.retry_after_hours} hour(s)."
        )

    @property
    def retry_after_hours(self) -> int:
        return math.ceil(self.retry_after_seconds / 3600)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["retry_after_seconds"] = self.retry_after_seconds
        return data


class UpstreamUnavailableError(ScanError):
    """DataForSEO fetch failed. Callers may retry; we never retry internally."""

    category = "upstream_unavailable"
    http_status = 502

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class PersistenceError(ScanError):
    """A durable store read or write failed."""

    category = "persistence_failure"
    http_status = 500

"""
Data Collection Package

Fetches ranked keywords for a domain from the DataForSEO Labs API.
"""

from .client import (
    DataForSEOClient,
    DataForSEOError,
    RANKED_KEYWORDS_ENDPOINT,
    create_client,
    safe_get_items,
)

__all__ = [
    "DataForSEOClient",
    "DataForSEOError",
    "RANKED_KEYWORDS_ENDPOINT",
    "create_client",
    "safe_get_items",
]

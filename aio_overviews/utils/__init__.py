"""Utility modules for the AI Overview checker."""

from .config import Settings, get_settings
from .domain import (
    STATIC_FILE_EXTENSIONS,
    clean_domain,
    is_valid_domain,
    normalize_domain,
)

__all__ = [
    "Settings",
    "get_settings",
    # Domain validation
    "STATIC_FILE_EXTENSIONS",
    "clean_domain",
    "is_valid_domain",
    "normalize_domain",
]

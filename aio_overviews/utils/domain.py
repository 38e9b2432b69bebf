"""
Domain Validation Utilities

Canonicalizes user-submitted domains and rejects anything that does not
look like a registrable host name:
- https://www.example.com/page -> example.com
- Example.COM -> example.com
- favicon.ico, robots.txt, /path -> rejected
"""

import re
import logging
from typing import Any

from ..errors import InvalidDomainError

logger = logging.getLogger(__name__)


# Extensions that browsers and crawlers request against /{domain} routes
STATIC_FILE_EXTENSIONS = (
    "png", "ico", "svg", "jpg", "jpeg", "gif", "webp",
    "txt", "xml", "json", "js", "css", "map",
    "woff", "woff2", "ttf", "eot",
)

_STATIC_FILE_RE = re.compile(r"\.(?:%s)$" % "|".join(STATIC_FILE_EXTENSIONS), re.IGNORECASE)
_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)
_LABEL_RE = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$")
_TLD_RE = re.compile(r"^[a-z]{2,}$")


def clean_domain(value: str) -> str:
    """
    Strip scheme, every leading www. prefix and any path from a domain input.

    Does not validate; see normalize_domain().
    """
    cleaned = value.strip().lower()
    cleaned = _SCHEME_RE.sub("", cleaned)
    while cleaned.startswith("www."):
        cleaned = cleaned[4:]
    return cleaned.split("/", 1)[0]


def is_valid_domain(value: Any) -> bool:
    """
    Check an already-cleaned domain against the label grammar.

    Rules:
    - No path separators
    - At least one dot
    - No static file extension (favicon.ico, robots.txt, ...)
    - Each label 1-63 chars of [a-z0-9-], no leading/trailing hyphen
    - TLD is 2+ letters
    """
    if not value or not isinstance(value, str):
        return False

    if "/" in value or "." not in value:
        return False

    if _STATIC_FILE_RE.search(value):
        return False

    labels = value.lower().split(".")
    if not _TLD_RE.match(labels[-1]):
        return False

    return all(_LABEL_RE.match(label) for label in labels[:-1])


def normalize_domain(value: Any) -> str:
    """
    Canonicalize a domain input or raise InvalidDomainError.

    Idempotent: normalize_domain(normalize_domain(d)) == normalize_domain(d).
    """
    if not value or not isinstance(value, str):
        raise InvalidDomainError("Domain is required", value=value)

    domain = clean_domain(value)

    if not is_valid_domain(domain):
        logger.debug(f"Rejected domain input: {value!r}")
        raise InvalidDomainError(value=value)

    return domain

import logging
import re
from functools import lru_cache
from typing import Optional, Pattern
from urllib.parse import urlsplit

logger = logging.getLogger("matcher")


@lru_cache(maxsize=256)
def _compile(pattern: str) -> Optional[Pattern]:
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as e:
        logger.warning(f"Invalid site pattern {pattern!r}: {e}")
        return None


def hostname_of(url: str) -> Optional[str]:
    """Hostname of an absolute URL, or None when the URL cannot be parsed."""
    try:
        parts = urlsplit(url)
        host = parts.hostname
    except ValueError:
        return None
    if not parts.scheme:
        return None
    return host or ""


def matches(url: str, pattern: str, is_regex: bool = False) -> bool:
    """Decide whether a navigation URL belongs to a tracked site.

    Regex patterns are searched case-insensitively against the full URL.
    Plain patterns match when they are a case-folded substring of either the
    hostname or the full URL; unparseable URLs never match.
    """
    if not url or not pattern:
        return False

    if is_regex:
        compiled = _compile(pattern)
        return bool(compiled and compiled.search(url))

    host = hostname_of(url)
    if host is None:
        return False
    lowered = pattern.lower()
    return lowered in host.lower() or lowered in url.lower()

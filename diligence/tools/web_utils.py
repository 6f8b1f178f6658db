from __future__ import annotations

import re
from urllib.parse import urlparse, urlsplit, urlunsplit

_URL_PATTERN = re.compile(r"https?://[^\s<>\"'\])}]+")
_TRAILING_PUNCTUATION = ".,;:!?*_`"


def is_valid_url(url: str) -> bool:
    """Basic URL validation."""
    try:
        result = urlparse(url)
        return all([result.scheme in ("http", "https"), result.netloc])
    except ValueError:
        return False


def normalize_url(url: str) -> str:
    """Identity key for a source URL.

    Scheme and host are lowercased and a trailing slash is dropped from the
    URL. Path, query and fragment keep their case.
    """
    cleaned = (url or "").strip().rstrip(_TRAILING_PUNCTUATION + "/#")
    try:
        parts = urlsplit(cleaned)
    except ValueError:
        return cleaned
    if not parts.scheme or not parts.netloc:
        return cleaned
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), parts.path, parts.query, parts.fragment))


def extract_urls(text: str) -> list[str]:
    """Cited URLs in order of first appearance, without duplicates."""
    seen: set[str] = set()
    urls: list[str] = []
    for match in _URL_PATTERN.findall(text or ""):
        url = normalize_url(match)
        if url in seen or not is_valid_url(url):
            continue
        seen.add(url)
        urls.append(url)
    return urls


def extract_domain(url: str) -> str:
    """Extract domain from URL for display."""
    try:
        return urlparse(url).netloc or url
    except ValueError:
        return url

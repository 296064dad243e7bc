"""URL and hostname helpers."""

import re
import string
from urllib.parse import urlparse

from chapter_watch.errors import InvalidURLError

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")


def normalize_url(url: str) -> str:
    """Return an absolute http(s) URL, prepending ``https://`` when no scheme is given."""
    url = (url or "").strip()
    if not url:
        raise InvalidURLError("URL is empty")
    if not _SCHEME_RE.match(url):
        url = "https://" + url.lstrip("/")
    parsed = urlparse(url)
    if parsed.scheme.lower() not in ("http", "https") or not parsed.hostname:
        raise InvalidURLError(f"Invalid absolute URL: {url!r}")
    return url


def normalize_host(host: str | None) -> str:
    """Normalize a hostname for use as a lookup key.

    Trims whitespace, strips any trailing run of dots and whitespace and
    lowercases. Idempotent.
    """
    if not host:
        return ""
    return host.strip().rstrip(string.whitespace + ".").lower()


def host_of(url: str) -> str:
    """Extract the normalized hostname from a URL."""
    return normalize_host(urlparse(url).hostname)


def origin_of(url: str) -> str:
    """Return the scheme and authority of a URL with a trailing slash."""
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}/"


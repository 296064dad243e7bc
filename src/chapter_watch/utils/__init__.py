"""Utility functions and classes."""

from chapter_watch.utils.logging import CorrelationAdapter, configure_logging, new_correlation_id
from chapter_watch.utils.throttle import HostThrottle
from chapter_watch.utils.url_utils import host_of, normalize_host, normalize_url, origin_of

__all__ = [
    "CorrelationAdapter",
    "HostThrottle",
    "configure_logging",
    "host_of",
    "new_correlation_id",
    "normalize_host",
    "normalize_url",
    "origin_of",
]

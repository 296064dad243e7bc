"""Result types shared by the fetch tiers."""

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from enum import Enum

from pydantic import BaseModel, Field

_MAX_RETRY_AFTER = 60.0  # Never honour a longer Retry-After on a single retry


class FetchTier(str, Enum):
    """Which tier produced a page."""

    DIRECT = "direct"
    WARMUP = "warmup"
    RENDER = "render"
    INTERACTIVE = "interactive"


class FetchFailure(str, Enum):
    """Why a fetch produced no page."""

    BLOCKED = "blocked"
    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    HTTP_ERROR = "http_error"


class HttpResponse(BaseModel):
    """A single direct HTTP exchange, reduced to what classification needs."""

    url: str
    final_url: str
    status_code: int = 0
    headers: dict[str, str] = Field(default_factory=dict)
    text: str = ""
    error: str | None = None
    timed_out: bool = False
    retry_after: float | None = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300 and not self.error

    def header(self, name: str) -> str | None:
        return self.headers.get(name.lower())


class FetchOutcome(BaseModel):
    """Final result of driving one URL through the fetch tiers."""

    url: str
    cid: str
    html: str = ""
    tier: FetchTier | None = None
    failure: FetchFailure | None = None
    reason: str | None = None
    status_code: int = 0
    http_attempts: int = 0
    render_attempts: int = 0
    elapsed: float = 0.0

    @property
    def success(self) -> bool:
        return self.failure is None and bool(self.html)


def parse_retry_after(header_value: str | None) -> float | None:
    """Parse a Retry-After header value into seconds.

    Supports both delta-seconds (e.g. "120") and HTTP-date formats.
    Returns None if the header is missing or unparseable.
    """
    if not header_value:
        return None
    try:
        return min(max(0.0, float(header_value)), _MAX_RETRY_AFTER)
    except ValueError:
        pass
    try:
        dt = parsedate_to_datetime(header_value)
    except (TypeError, ValueError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    delta = (dt - datetime.now(timezone.utc)).total_seconds()
    return min(max(0.0, delta), _MAX_RETRY_AFTER)

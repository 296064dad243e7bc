"""Cheap existence checks for speculative next-chapter URLs."""

import logging

from chapter_watch.config import FetcherConfig, ProberConfig
from chapter_watch.errors import InvalidTemplateError
from chapter_watch.fetcher.base import HttpResponse
from chapter_watch.fetcher.challenge import vendor_signature
from chapter_watch.fetcher.http_fetcher import HttpFetcher
from chapter_watch.utils.throttle import HostThrottle
from chapter_watch.utils.url_utils import host_of, normalize_url, origin_of

logger = logging.getLogger(__name__)

TEMPLATE_TOKEN = "$chapter"

REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})

# Servers that refuse HEAD (or rate-limit it) often answer a small ranged GET
RANGED_GET_STATUSES = frozenset({403, 405, 429})


def format_chapter(number: float) -> str:
    """Whole numbers without decimals, fractional ones with at most two."""
    if float(number).is_integer():
        return str(int(number))
    return f"{number:.2f}".rstrip("0").rstrip(".")


def validate_template(template: str) -> str:
    """Ensure ``template`` contains exactly one chapter token."""
    count = template.count(TEMPLATE_TOKEN)
    if count != 1:
        raise InvalidTemplateError(
            f"Chapter URL template must contain {TEMPLATE_TOKEN!r} exactly once, found {count}: {template!r}"
        )
    return template


def build_chapter_url(template: str, number: float) -> str:
    """Substitute ``number`` into ``template``."""
    validate_template(template)
    return normalize_url(template.replace(TEMPLATE_TOKEN, format_chapter(number)))


def _is_hit(response: HttpResponse) -> bool:
    return 200 <= response.status_code < 300 or response.status_code in REDIRECT_STATUSES


class Prober:
    """Check whether a chapter URL exists without downloading or rendering it."""

    def __init__(
        self,
        http: HttpFetcher,
        throttle: HostThrottle,
        config: ProberConfig | None = None,
        fetcher_config: FetcherConfig | None = None,
    ):
        self.http = http
        self.throttle = throttle
        self.config = config or ProberConfig()
        self.fetcher_config = fetcher_config or http.config

    async def exists(self, template: str, number: float) -> bool:
        """Return True when the chapter ``number`` of ``template`` appears to exist."""
        url = build_chapter_url(template, number)
        host = host_of(url)

        response = await self._send("HEAD", url, host)
        if response.error:
            # Some servers drop HEAD connections outright but answer GET
            logger.info("Probe HEAD %s failed: %s; trying ranged GET", url, response.error)
            return await self._ranged_get(url, host)
        if _is_hit(response):
            logger.info("Probe HEAD %s -> %d (exists)", url, response.status_code)
            return True

        signature = vendor_signature(response.headers)
        if signature:
            # A challenge says nothing about whether the chapter is there
            logger.info("Probe HEAD %s -> %d behind %s", url, response.status_code, ", ".join(signature))
            return False

        if response.status_code not in RANGED_GET_STATUSES:
            logger.info("Probe HEAD %s -> %d (missing)", url, response.status_code)
            return False

        return await self._ranged_get(url, host)

    async def _ranged_get(self, url: str, host: str) -> bool:
        response = await self._send("GET", url, host, range_bytes=self.config.range_bytes)
        if response.error:
            logger.info("Probe GET %s failed: %s", url, response.error)
            return False
        found = _is_hit(response)
        logger.info(
            "Probe ranged GET %s -> %d (%s)",
            url, response.status_code, "exists" if found else "missing",
        )
        return found

    async def _send(
        self, method: str, url: str, host: str, range_bytes: int | None = None
    ) -> HttpResponse:
        await self.throttle.acquire(host)
        return await self.http.peek(
            method,
            url,
            user_agent=self.fetcher_config.user_agents[0],
            referer=origin_of(url),
            range_bytes=range_bytes,
            timeout=self.config.timeout_ms / 1000,
        )

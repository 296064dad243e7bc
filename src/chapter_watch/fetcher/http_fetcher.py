"""Direct HTTP tier built on a shared httpx client and cookie jar."""

import logging

import httpx

from chapter_watch.config import FetcherConfig
from chapter_watch.fetcher.base import HttpResponse, parse_retry_after

logger = logging.getLogger(__name__)

DEFAULT_ACCEPT = (
    "text/html,application/xhtml+xml,application/xml;q=0.9,"
    "image/avif,image/webp,*/*;q=0.8"
)


class HttpFetcher:
    """Plain HTTP requests with browser-like headers and a persistent cookie jar.

    Cookies harvested by the render tier are merged into the same jar, so a
    warm-up performed in the browser carries over to the next direct attempt.
    """

    def __init__(
        self,
        config: FetcherConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or FetcherConfig()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self):
        """Initialize HTTP client."""
        self._client = httpx.AsyncClient(
            headers={
                "Accept": DEFAULT_ACCEPT,
                "Accept-Language": self.config.accept_language,
                "Cache-Control": "no-cache",
                "User-Agent": self.config.user_agents[0],
            },
            follow_redirects=True,
            timeout=self.config.timeout_ms / 1000,
            default_encoding="utf-8",
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Clean up HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if not self._client:
            raise RuntimeError("Fetcher not initialized. Use 'async with' context manager.")
        return self._client

    @property
    def cookies(self) -> httpx.Cookies:
        return self.client.cookies

    def merge_cookies(self, cookies: list[dict]) -> int:
        """Merge browser cookies (Playwright cookie dicts) into the jar."""
        added = 0
        for cookie in cookies:
            name = cookie.get("name")
            if not name:
                continue
            self.client.cookies.set(
                name,
                cookie.get("value", ""),
                domain=(cookie.get("domain") or "").lstrip("."),
                path=cookie.get("path") or "/",
            )
            added += 1
        return added

    def _request_headers(self, user_agent: str | None, referer: str | None) -> dict[str, str]:
        headers = {}
        if user_agent:
            headers["User-Agent"] = user_agent
        if referer:
            headers["Referer"] = referer
        return headers

    async def get(
        self,
        url: str,
        user_agent: str | None = None,
        referer: str | None = None,
    ) -> HttpResponse:
        """GET a page, following redirects, and decode its body.

        The body is decoded with the charset the response declares, falling
        back to UTF-8. Transport failures are reported on the result instead
        of raised.
        """
        try:
            response = await self.client.get(
                url, headers=self._request_headers(user_agent, referer)
            )
        except httpx.TimeoutException as e:
            return HttpResponse(url=url, final_url=url, error=f"timeout: {e}", timed_out=True)
        except httpx.HTTPError as e:
            return HttpResponse(url=url, final_url=url, error=f"{type(e).__name__}: {e}")

        return HttpResponse(
            url=url,
            final_url=str(response.url),
            status_code=response.status_code,
            headers={k.lower(): v for k, v in response.headers.items()},
            text=response.text,
            retry_after=parse_retry_after(response.headers.get("retry-after")),
        )

    async def peek(
        self,
        method: str,
        url: str,
        user_agent: str | None = None,
        referer: str | None = None,
        range_bytes: int | None = None,
        timeout: float | None = None,
    ) -> HttpResponse:
        """Send a request without following redirects or reading the body.

        Used for existence probes: only the status line and headers matter.
        """
        headers = self._request_headers(user_agent, referer)
        if range_bytes:
            headers["Range"] = f"bytes=0-{range_bytes - 1}"
        try:
            async with self.client.stream(
                method,
                url,
                headers=headers,
                follow_redirects=False,
                timeout=timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT,
            ) as response:
                return HttpResponse(
                    url=url,
                    final_url=str(response.url),
                    status_code=response.status_code,
                    headers={k.lower(): v for k, v in response.headers.items()},
                )
        except httpx.TimeoutException as e:
            return HttpResponse(url=url, final_url=url, error=f"timeout: {e}", timed_out=True)
        except httpx.HTTPError as e:
            return HttpResponse(url=url, final_url=url, error=f"{type(e).__name__}: {e}")

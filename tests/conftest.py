"""Shared test fixtures and fakes."""

import logging
from collections.abc import Callable

import httpx
import pytest

from chapter_watch.config import FetcherConfig, RenderConfig, ThrottleConfig
from chapter_watch.fetcher.host_store import HostStrategyStore
from chapter_watch.fetcher.http_fetcher import HttpFetcher
from chapter_watch.render.base import RenderFallback
from chapter_watch.utils.throttle import HostThrottle

CHALLENGE_BODY = """<html><head><title>Just a moment...</title></head>
<body><div id="cf-chl-widget">Checking your browser before accessing example.com</div>
<script src="https://challenges.cloudflare.com/turnstile/v0/api.js"></script></body></html>"""

SERIES_HTML = """<html><body>
<h1>Some Series</h1>
<ul class="main version-chap">
  <li class="wp-manga-chapter"><a href="https://example.com/manga/some-series/chapter-12/">Chapter 12</a></li>
  <li class="wp-manga-chapter"><a href="https://example.com/manga/some-series/chapter-11/">Chapter 11</a></li>
  <li class="wp-manga-chapter"><a href="https://example.com/manga/some-series/chapter-10/">Chapter 10</a></li>
</ul>
</body></html>"""


class FakeRenderer(RenderFallback):
    """Scripted render collaborator that records every call."""

    def __init__(
        self,
        renders: list[str | None] | None = None,
        cookies: list[dict] | None = None,
        solve: bool = False,
    ):
        self.renders = list(renders or [])
        self.cookies = cookies
        self.solve = solve
        self.render_calls: list[tuple[str, str | None]] = []
        self.warmup_calls: list[str] = []
        self.solve_calls: list[str] = []

    async def render(self, url, timeout, user_agent=None):
        self.render_calls.append((url, user_agent))
        return self.renders.pop(0) if self.renders else None

    async def warm_up_cookies(self, url, timeout):
        self.warmup_calls.append(url)
        return self.cookies

    async def solve_interactively(self, url, timeout):
        self.solve_calls.append(url)
        return self.solve

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return None


class RecordingPersistence:
    """In-memory stand-in for the state file."""

    def __init__(self):
        self.saved: list[list[str]] = []

    async def save_render_required_hosts(self, hosts):
        self.saved.append(list(hosts))


def scripted_transport(responses: list[httpx.Response | Exception]) -> tuple[httpx.MockTransport, list[httpx.Request]]:
    """Transport replaying ``responses`` in order; the last one repeats."""
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        item = responses[min(len(seen), len(responses)) - 1]
        if isinstance(item, Exception):
            raise item
        return item

    return httpx.MockTransport(handler), seen


def routed_transport(routes: dict[str, Callable[[httpx.Request], httpx.Response]]) -> httpx.MockTransport:
    """Transport dispatching on the request path."""

    def handler(request: httpx.Request) -> httpx.Response:
        route = routes.get(request.url.path)
        if route is None:
            return httpx.Response(404)
        return route(request)

    return httpx.MockTransport(handler)


@pytest.fixture
def fast_fetcher_config() -> FetcherConfig:
    return FetcherConfig(backoff_base_seconds=0.0, backoff_jitter_seconds=0.0, warmup_settle_seconds=0.0)


@pytest.fixture
def render_config(tmp_path) -> RenderConfig:
    return RenderConfig(profile_dir=tmp_path / "profile")


@pytest.fixture
def no_wait_throttle() -> HostThrottle:
    return HostThrottle(ThrottleConfig(min_delay_seconds=0.0, jitter_min_seconds=0.0, jitter_max_seconds=0.0))


@pytest.fixture
def persistence() -> RecordingPersistence:
    return RecordingPersistence()


@pytest.fixture
def host_store(persistence) -> HostStrategyStore:
    return HostStrategyStore(persistence)


@pytest.fixture
def make_http(fast_fetcher_config) -> Callable[[httpx.AsyncBaseTransport], HttpFetcher]:
    def factory(transport: httpx.AsyncBaseTransport) -> HttpFetcher:
        return HttpFetcher(fast_fetcher_config, transport=transport)

    return factory


@pytest.fixture
def reset_package_logger():
    """Undo handlers installed by configure_logging."""
    yield
    root = logging.getLogger("chapter_watch")
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(logging.NOTSET)

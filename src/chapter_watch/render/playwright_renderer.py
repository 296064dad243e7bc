"""Playwright-backed render tier with a persistent browser profile."""

import asyncio
import json
import logging
import time

from playwright.async_api import BrowserContext, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

from chapter_watch.config import RenderConfig
from chapter_watch.render.base import RenderFallback
from chapter_watch.utils.url_utils import origin_of

logger = logging.getLogger(__name__)

_CHALLENGE_POLL_SECONDS = 0.6
_SOLVE_POLL_SECONDS = 0.8
_WARMUP_SETTLE_SECONDS = 1.5

MOBILE_VIEWPORT = {"width": 412, "height": 915}

# Makes in-page scripts see the same identity as the request headers
_MOBILE_IDENTITY_JS = """(() => {
    const ua = %s;
    Object.defineProperty(navigator, "userAgent", { get: () => ua });
    Object.defineProperty(navigator, "platform", { get: () => "Linux armv8l" });
    Object.defineProperty(navigator, "maxTouchPoints", { get: () => 5 });
})();"""

# Returns a snapshot of the challenge state of the current document
_CHALLENGE_STATE_JS = """(cookieName) => {
    try {
        const hasClearance = document.cookie.includes(cookieName + '=');
        const bodyText = (document.body ? document.body.innerText : '').toLowerCase();
        const isChallenge = /checking your browser|just a moment|ddos|confirm you are human|verify you are human|mensch sind/.test(bodyText);
        const chapterLinks = document.querySelectorAll(
            'li.wp-manga-chapter a, ul.chapter-list a, .chapter-list a, .eplist a, .chapters a, a[href*="chapter"]'
        ).length;
        return { hasClearance, isChallenge, ready: document.readyState, chapterLinks };
    } catch (e) {
        return { error: true };
    }
}"""

_ASSIST_JS = """() => {
    setTimeout(() => {
        const iframe = document.querySelector('iframe[src*="challenges.cloudflare.com"]');
        if (iframe) {
            iframe.scrollIntoView({behavior: 'smooth', block: 'center'});
            try { iframe.contentWindow && iframe.contentWindow.focus(); } catch (e) {}
        }
    }, 700);
}"""


class PlaywrightRenderer(RenderFallback):
    """Render, warm up cookies and host interactive solves in one Chromium profile.

    All operations share a persistent profile directory, so a clearance cookie
    earned in an interactive solve is reused by later headless renders. A
    persistent profile can only be opened by one browser at a time, so every
    operation runs under a single lock: this object behaves as an actor that
    serializes requests against its browser session.
    """

    def __init__(self, config: RenderConfig | None = None):
        self.config = config or RenderConfig()
        self._playwright: Playwright | None = None
        self._context: BrowserContext | None = None
        self._context_headless: bool | None = None
        self._lock = asyncio.Lock()

    async def __aenter__(self):
        """Start Playwright; the browser itself is launched on first use."""
        self._playwright = await async_playwright().start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Close the browser and stop Playwright."""
        await self._close_context()
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None

    async def _ensure_context(self, headless: bool) -> BrowserContext:
        if not self._playwright:
            raise RuntimeError("Renderer not initialized. Use 'async with' context manager.")
        if self._context is not None and self._context_headless == headless:
            return self._context
        await self._close_context()
        self.config.profile_dir.mkdir(parents=True, exist_ok=True)
        self._context = await self._playwright.chromium.launch_persistent_context(
            str(self.config.profile_dir),
            headless=headless,
            user_agent=self.config.user_agent,
            viewport={"width": 1280, "height": 720} if headless else {"width": 980, "height": 760},
        )
        self._context_headless = headless
        return self._context

    async def _close_context(self) -> None:
        if self._context is None:
            return
        try:
            await self._context.close()
        except PlaywrightError:
            logger.debug("Failed to close browser context", exc_info=True)
        self._context = None
        self._context_headless = None

    @staticmethod
    async def _close_page(page: Page) -> None:
        try:
            await page.close()
        except PlaywrightError:
            logger.debug("Failed to close page", exc_info=True)

    async def render(
        self, url: str, timeout: float, user_agent: str | None = None
    ) -> str | None:
        """Render ``url`` headless and return the page HTML, or None."""
        async with self._lock:
            context = await self._ensure_context(self.config.headless)
            page = await context.new_page()
            started = time.monotonic()
            try:
                if user_agent:
                    await self._emulate_mobile(page, user_agent)
                await page.goto(url, wait_until="domcontentloaded", timeout=timeout * 1000)

                wait_budget = min(self.config.challenge_wait_seconds, timeout)
                if not await self._wait_for_challenge_clear(page, wait_budget):
                    logger.warning("Challenge not cleared within %.0fs, capturing anyway: %s", wait_budget, url)

                await self._scroll_nudge(page)
                await asyncio.sleep(_CHALLENGE_POLL_SECONDS)
                html = await page.content()
            except PlaywrightError as e:
                logger.warning("Render failed for %s: %s", url, e)
                return None
            finally:
                await self._close_page(page)

        logger.debug(
            "Rendered %s (%d chars) in %.0f ms",
            url, len(html), (time.monotonic() - started) * 1000,
        )
        return html if html.strip() else None

    @staticmethod
    async def _emulate_mobile(page: Page, user_agent: str) -> None:
        """Present ``user_agent`` to the server and to page scripts on a phone-sized viewport."""
        await page.set_extra_http_headers({"User-Agent": user_agent})
        await page.set_viewport_size(MOBILE_VIEWPORT)
        await page.add_init_script(_MOBILE_IDENTITY_JS % json.dumps(user_agent))

    async def warm_up_cookies(self, url: str, timeout: float) -> list[dict] | None:
        """Visit the origin, then the target, and hand back the cookies collected."""
        async with self._lock:
            context = await self._ensure_context(self.config.headless)
            page = await context.new_page()
            try:
                return await asyncio.wait_for(
                    self._warm_up(context, page, url, timeout), timeout=timeout
                )
            except (PlaywrightError, asyncio.TimeoutError) as e:
                logger.warning("Cookie warm-up failed for %s: %s", url, e)
                return None
            finally:
                await self._close_page(page)

    async def _warm_up(
        self, context: BrowserContext, page: Page, url: str, timeout: float
    ) -> list[dict]:
        origin = origin_of(url)
        logger.info("Warm-up: navigate to origin %s", origin)
        await page.goto(origin, wait_until="load", timeout=timeout * 1000)
        await asyncio.sleep(_WARMUP_SETTLE_SECONDS)
        logger.info("Warm-up: navigate to target %s", url)
        await page.goto(url, wait_until="load", timeout=timeout * 1000)
        await asyncio.sleep(_WARMUP_SETTLE_SECONDS)
        cookies = await context.cookies(url)
        logger.info("Warm-up collected %d cookies for %s", len(cookies), url)
        return [dict(c) for c in cookies]

    async def solve_interactively(self, url: str, timeout: float) -> bool:
        """Open a visible window on ``url`` and wait for the clearance cookie.

        The window is closed when the cookie appears, when the deadline
        passes, or when the calling task is cancelled.
        """
        async with self._lock:
            try:
                context = await self._ensure_context(headless=False)
                page = await context.new_page()
            except PlaywrightError as e:
                logger.warning("Could not open interactive solve window: %s", e)
                await self._close_context()
                return False

            try:
                logger.info(
                    "Waiting up to %.0fs for %s cookie on %s",
                    timeout, self.config.clearance_cookie, url,
                )
                await self._navigate_for_solve(page, url)
                deadline = time.monotonic() + timeout
                while time.monotonic() < deadline:
                    if page.is_closed():
                        logger.info("Solve window closed by user")
                        return False
                    if await self._has_clearance(context, url):
                        logger.info("Clearance cookie found for %s", url)
                        return True
                    await asyncio.sleep(_SOLVE_POLL_SECONDS)
                logger.warning("Interactive solve timed out for %s", url)
                return False
            finally:
                # Releases the visible window, including on cancellation
                await self._close_context()

    async def _navigate_for_solve(self, page: Page, url: str) -> None:
        try:
            await page.goto(origin_of(url), wait_until="domcontentloaded")
            await page.goto(url, wait_until="domcontentloaded")
            await page.evaluate(_ASSIST_JS)
        except PlaywrightError:
            # The challenge page often keeps navigating; the human takes over
            logger.debug("Navigation during solve did not settle", exc_info=True)

    async def _has_clearance(self, context: BrowserContext, url: str) -> bool:
        try:
            cookies = await context.cookies(url)
        except PlaywrightError:
            return False
        soon = time.time() + 60
        for cookie in cookies:
            if cookie.get("name", "").lower() != self.config.clearance_cookie.lower():
                continue
            expires = cookie.get("expires", -1)
            if expires == -1 or expires > soon:
                return True
        return False

    async def _wait_for_challenge_clear(self, page: Page, max_seconds: float) -> bool:
        """Poll until the page no longer looks like a challenge and shows chapter links."""
        deadline = time.monotonic() + max_seconds
        while time.monotonic() < deadline:
            try:
                state = await page.evaluate(_CHALLENGE_STATE_JS, self.config.clearance_cookie)
            except PlaywrightError:
                # Navigation in progress destroys the execution context
                state = None
            if state and not state.get("error"):
                ready = state.get("hasClearance") or state.get("ready") == "complete"
                if not state.get("isChallenge") and ready and state.get("chapterLinks", 0) >= 3:
                    return True
            await asyncio.sleep(_CHALLENGE_POLL_SECONDS)
        return False

    @staticmethod
    async def _scroll_nudge(page: Page) -> None:
        """Scroll in steps so lazily loaded chapter lists get populated."""
        for fraction in ("1/3", "2/3", "1"):
            try:
                await page.evaluate(f"window.scrollTo(0, document.body.scrollHeight*{fraction})")
            except PlaywrightError:
                logger.debug("Scroll nudge failed", exc_info=True)
                return
            await asyncio.sleep(0.2)

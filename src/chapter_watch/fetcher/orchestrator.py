"""Drive one URL through the fetch tiers until a page or a final failure.

Tiers, cheapest first: direct HTTP, direct HTTP after a browser cookie
warm-up, full browser render, and a human-assisted challenge solve followed
by one more render. Hosts that were only ever satisfied by the render tier
are remembered and skip straight to it next time.
"""

import asyncio
import itertools
import logging
import random
import time
from dataclasses import dataclass
from enum import Enum

from chapter_watch.config import FetcherConfig, RenderConfig
from chapter_watch.fetcher.base import FetchFailure, FetchOutcome, FetchTier, HttpResponse
from chapter_watch.fetcher.challenge import VerdictKind, classify, classify_response
from chapter_watch.fetcher.host_store import HostStrategyStore
from chapter_watch.fetcher.http_fetcher import HttpFetcher
from chapter_watch.render.base import RenderFallback
from chapter_watch.utils.logging import CorrelationAdapter, new_correlation_id
from chapter_watch.utils.throttle import HostThrottle
from chapter_watch.utils.url_utils import host_of, normalize_url, origin_of

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = frozenset({408, 500, 502, 503, 504})


class FetchState(str, Enum):
    HTTP_ATTEMPT = "http_attempt"
    CHALLENGE_SUSPECTED = "challenge_suspected"
    COOKIE_WARMUP = "cookie_warmup"
    RENDER_CAPTURE = "render_capture"
    INTERACTIVE_SOLVE = "interactive_solve"
    SUCCESS = "success"
    FAILED = "failed"


TERMINAL_STATES = frozenset({FetchState.SUCCESS, FetchState.FAILED})


@dataclass
class _FetchRun:
    """Mutable bookkeeping for one URL while the state machine runs."""

    url: str
    host: str
    log: CorrelationAdapter
    started: float
    http_attempts: int = 0
    transient_failures: int = 0
    render_attempts: int = 0
    warmed_up: bool = False
    solve_attempted: bool = False
    solved: bool = False
    challenge_seen: bool = False
    last_status: int = 0
    last_error: str | None = None
    last_timed_out: bool = False
    html: str = ""
    tier: FetchTier | None = None
    failure: FetchFailure | None = None
    reason: str | None = None

    @property
    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.started) * 1000


class FetchOrchestrator:
    """State machine that obtains a page's HTML despite rate limits and challenges.

    Collaborators are injected: the throttle spaces requests per host, the
    host store remembers render-only hosts, and the renderer (optional)
    provides warm-up, render and interactive-solve capabilities. Failures are
    returned as a :class:`FetchOutcome`, never raised.
    """

    def __init__(
        self,
        http: HttpFetcher,
        throttle: HostThrottle,
        host_store: HostStrategyStore,
        renderer: RenderFallback | None = None,
        fetcher_config: FetcherConfig | None = None,
        render_config: RenderConfig | None = None,
        rng: random.Random | None = None,
    ):
        self.http = http
        self.throttle = throttle
        self.host_store = host_store
        self.renderer = renderer
        self.fetcher_config = fetcher_config or http.config
        self.render_config = render_config or RenderConfig()
        self._rng = rng or random.Random()
        self._user_agents = itertools.cycle(self.fetcher_config.user_agents)

    @property
    def render_enabled(self) -> bool:
        return self.renderer is not None and self.render_config.enabled

    @property
    def solve_enabled(self) -> bool:
        return self.render_enabled and self.render_config.interactive_solve

    async def fetch(self, url: str) -> FetchOutcome:
        """Fetch ``url`` through the tiers and return the outcome."""
        url = normalize_url(url)
        cid = new_correlation_id()
        run = _FetchRun(
            url=url,
            host=host_of(url),
            log=CorrelationAdapter(logger, cid),
            started=time.monotonic(),
        )
        run.log.info("START fetch %s (host=%s)", url, run.host)

        if self.render_enabled and self.host_store.is_render_required(run.host):
            run.log.info("Host is render-required, skipping direct HTTP")
            state = FetchState.RENDER_CAPTURE
        else:
            state = FetchState.HTTP_ATTEMPT

        while state not in TERMINAL_STATES:
            state = await self._step(state, run)

        outcome = FetchOutcome(
            url=url,
            cid=cid,
            html=run.html if state is FetchState.SUCCESS else "",
            tier=run.tier if state is FetchState.SUCCESS else None,
            failure=run.failure if state is FetchState.FAILED else None,
            reason=run.reason,
            status_code=run.last_status,
            http_attempts=run.http_attempts,
            render_attempts=run.render_attempts,
            elapsed=run.elapsed_ms / 1000,
        )
        if outcome.success:
            run.log.info(
                "DONE via tier=%s in %.0f ms (%d chars)",
                outcome.tier.value, run.elapsed_ms, len(outcome.html),
            )
        else:
            run.log.warning(
                "FAILED %s (%s) after %d HTTP / %d render attempts in %.0f ms",
                outcome.failure.value if outcome.failure else "unknown",
                outcome.reason, run.http_attempts, run.render_attempts, run.elapsed_ms,
            )
        return outcome

    async def _step(self, state: FetchState, run: _FetchRun) -> FetchState:
        if state is FetchState.HTTP_ATTEMPT:
            return await self._http_attempt(run)
        if state is FetchState.CHALLENGE_SUSPECTED:
            return self._on_challenge(run)
        if state is FetchState.COOKIE_WARMUP:
            return await self._cookie_warmup(run)
        if state is FetchState.RENDER_CAPTURE:
            return await self._render_capture(run)
        if state is FetchState.INTERACTIVE_SOLVE:
            return await self._interactive_solve(run)
        raise RuntimeError(f"Invalid fetch state transition into {state!r}")

    # -- direct HTTP -----------------------------------------------------

    async def _http_attempt(self, run: _FetchRun) -> FetchState:
        run.http_attempts += 1
        waited = await self.throttle.acquire(run.host)
        if waited > 0:
            run.log.debug("Throttled %s for %.0f ms", run.host, waited * 1000)

        user_agent = next(self._user_agents)
        run.log.info(
            "HTTP attempt %d/%d tier=%s UA=%r",
            run.http_attempts, self.fetcher_config.max_attempts,
            "warmup" if run.warmed_up else "direct", user_agent,
        )
        attempt_started = time.monotonic()
        response = await self.http.get(run.url, user_agent=user_agent, referer=origin_of(run.url))
        verdict = classify_response(response)
        run.last_status = response.status_code
        run.log.info(
            "HTTP %d -> %s in %.0f ms (server=%r)%s",
            response.status_code, verdict.kind.value,
            (time.monotonic() - attempt_started) * 1000,
            response.header("server") or "",
            f" reasons={verdict.reasons}" if verdict.reasons else "",
        )

        if verdict.kind is VerdictKind.CHALLENGE:
            return FetchState.CHALLENGE_SUSPECTED

        if verdict.kind is VerdictKind.NETWORK_ERROR:
            run.last_error = response.error
            run.last_timed_out = response.timed_out
            return await self._retry_or_escalate(run, response)

        if response.ok:
            run.html = response.text
            run.tier = FetchTier.WARMUP if run.warmed_up else FetchTier.DIRECT
            run.log.info("HTTP success; payload %d chars", len(response.text))
            return FetchState.SUCCESS

        if response.status_code in RETRYABLE_STATUSES:
            run.last_error = f"HTTP {response.status_code}"
            run.last_timed_out = response.status_code == 408
            return await self._retry_or_escalate(run, response)

        run.failure = FetchFailure.HTTP_ERROR
        run.reason = f"HTTP {response.status_code}"
        return FetchState.FAILED

    async def _retry_or_escalate(self, run: _FetchRun, response: HttpResponse) -> FetchState:
        # Only transient failures count; the retry after a warm-up is free
        run.transient_failures += 1
        if run.transient_failures < self.fetcher_config.max_attempts:
            delay = self.backoff_delay(run.transient_failures)
            if response.retry_after is not None:
                delay = max(delay, response.retry_after)
            run.log.info("Backoff %.0f ms before retry", delay * 1000)
            await asyncio.sleep(delay)
            return FetchState.HTTP_ATTEMPT
        run.log.warning("Exhausted %d HTTP attempts", run.http_attempts)
        if self.render_enabled:
            return FetchState.RENDER_CAPTURE
        return self._fail(run)

    def backoff_delay(self, attempt: int) -> float:
        """Exponential backoff with jitter for the ``attempt``-th retry (1-based)."""
        base = self.fetcher_config.backoff_base_seconds * (2 ** (attempt - 1))
        return base + self._rng.uniform(0, self.fetcher_config.backoff_jitter_seconds)

    # -- challenge handling ----------------------------------------------

    def _on_challenge(self, run: _FetchRun) -> FetchState:
        run.challenge_seen = True
        if not self.render_enabled:
            run.log.warning("Challenge detected and render tier disabled")
            return self._fail(run)
        if not run.warmed_up:
            return FetchState.COOKIE_WARMUP
        run.log.warning("Still blocked after cookie warm-up, escalating to render")
        return FetchState.RENDER_CAPTURE

    async def _cookie_warmup(self, run: _FetchRun) -> FetchState:
        assert self.renderer is not None
        run.warmed_up = True
        run.log.info("Trying cookie warm-up via renderer")
        started = time.monotonic()
        try:
            cookies = await self.renderer.warm_up_cookies(run.url, self._render_timeout)
        except Exception:
            # A broken collaborator only costs us this tier
            run.log.error("Cookie warm-up raised", exc_info=True)
            cookies = None
        elapsed_ms = (time.monotonic() - started) * 1000

        if cookies is None:
            run.log.warning("Cookie warm-up failed after %.0f ms", elapsed_ms)
            return FetchState.RENDER_CAPTURE

        imported = self.http.merge_cookies(cookies)
        run.log.info("Cookie warm-up imported %d cookies in %.0f ms", imported, elapsed_ms)
        await asyncio.sleep(self.fetcher_config.warmup_settle_seconds)
        return FetchState.HTTP_ATTEMPT

    # -- render tier -----------------------------------------------------

    @property
    def _render_timeout(self) -> float:
        return self.render_config.timeout_ms / 1000

    async def _render_capture(self, run: _FetchRun) -> FetchState:
        if not self.render_enabled:
            return self._fail(run)
        assert self.renderer is not None

        user_agents: list[str | None] = [None]
        user_agents += [self.render_config.mobile_user_agent] * self.render_config.retries
        for user_agent in user_agents:
            run.render_attempts += 1
            profile = "mobile" if user_agent else "desktop"
            run.log.info("Render attempt %d (%s profile)", run.render_attempts, profile)
            started = time.monotonic()
            html = await self._safe_render(run, user_agent)
            elapsed_ms = (time.monotonic() - started) * 1000

            if html and classify(200, {}, html).is_challenge:
                run.log.warning("Rendered page is still a challenge (%.0f ms)", elapsed_ms)
                run.challenge_seen = True
                continue
            if html:
                run.html = html
                run.tier = FetchTier.INTERACTIVE if run.solved else FetchTier.RENDER
                run.log.info("Render success in %.0f ms (%d chars)", elapsed_ms, len(html))
                try:
                    await self.host_store.mark_render_required(run.host)
                except OSError:
                    run.log.error("Could not persist render-required host %s", run.host, exc_info=True)
                return FetchState.SUCCESS
            run.log.warning("Render returned no HTML after %.0f ms", elapsed_ms)

        if self.solve_enabled and not run.solve_attempted:
            return FetchState.INTERACTIVE_SOLVE
        run.reason = run.reason or "render unavailable"
        return self._fail(run)

    async def _safe_render(self, run: _FetchRun, user_agent: str | None) -> str | None:
        assert self.renderer is not None
        try:
            return await self.renderer.render(run.url, self._render_timeout, user_agent)
        except Exception:
            run.log.error("Renderer raised", exc_info=True)
            return None

    async def _interactive_solve(self, run: _FetchRun) -> FetchState:
        assert self.renderer is not None
        run.solve_attempted = True
        timeout = self.render_config.solve_timeout_seconds
        run.log.warning("Handing off to interactive solve (timeout %.0fs)", timeout)
        try:
            solved = await asyncio.wait_for(
                self.renderer.solve_interactively(run.url, timeout), timeout=timeout + 5
            )
        except asyncio.TimeoutError:
            solved = False
        except Exception:
            run.log.error("Interactive solve raised", exc_info=True)
            solved = False

        if not solved:
            run.challenge_seen = True
            run.reason = "interactive solve not completed"
            return self._fail(run)
        run.solved = True
        run.log.info("Interactive solve completed, retrying render once")
        return FetchState.RENDER_CAPTURE

    def _fail(self, run: _FetchRun) -> FetchState:
        if run.challenge_seen:
            run.failure = FetchFailure.BLOCKED
        elif run.last_timed_out:
            run.failure = FetchFailure.TIMEOUT
        else:
            run.failure = FetchFailure.NETWORK_ERROR
        run.reason = run.reason or run.last_error or run.failure.value
        return FetchState.FAILED

"""Check every tracked series for a new chapter."""

import asyncio
import logging
import math
import time

from pydantic import BaseModel, Field

from chapter_watch.config import ScannerConfig
from chapter_watch.extractor.chapter_list import ChapterExtractor
from chapter_watch.fetcher.orchestrator import FetchOrchestrator
from chapter_watch.models import TrackedSeries
from chapter_watch.prober import Prober

logger = logging.getLogger(__name__)

_CHAPTER_EPSILON = 1e-4


class EntryResult(BaseModel):
    """What a scan did for one series."""

    url: str
    skipped: bool = False
    probed: bool = False
    advanced: bool = False
    chapter_bumped: bool = False
    latest: float | None = None
    tier: str | None = None
    error: str | None = None
    elapsed: float = 0.0


class ScanReport(BaseModel):
    """Results of one scan over all tracked series."""

    results: list[EntryResult] = Field(default_factory=list)
    elapsed: float = 0.0

    @property
    def advanced(self) -> list[EntryResult]:
        return [r for r in self.results if r.advanced]

    @property
    def failed(self) -> list[EntryResult]:
        return [r for r in self.results if r.error]


def apply_latest(series: TrackedSeries, latest: float) -> bool:
    """Record an extracted chapter value on ``series``; return whether it advanced.

    Any value above the stored chapter sets the flag, but the stored chapter
    only moves when the value is exactly one ahead. Larger jumps are usually a
    misread, so they are announced without being trusted.
    """
    if latest <= series.chapter:
        return False
    series.has_new_chapter = True
    if abs(latest - (series.chapter + 1)) < _CHAPTER_EPSILON:
        series.chapter += 1
    return True


def acknowledge(series: TrackedSeries, chapter: int | None = None) -> TrackedSeries:
    """Clear the new-chapter flag once the user has seen the update."""
    series.has_new_chapter = False
    if chapter is not None:
        series.chapter = max(0, chapter)
    return series


class UpdateScanner:
    """Run the probe / fetch / extract pipeline over a batch of series.

    Each series is checked in its own task with its own timeout, so a slow or
    failing site never holds up or aborts the rest of the batch. Entries are
    mutated in place; persisting them is left to the caller.
    """

    def __init__(
        self,
        orchestrator: FetchOrchestrator,
        extractor: ChapterExtractor,
        prober: Prober,
        config: ScannerConfig | None = None,
    ):
        self.orchestrator = orchestrator
        self.extractor = extractor
        self.prober = prober
        self.config = config or ScannerConfig()

    async def scan(self, series: list[TrackedSeries]) -> ScanReport:
        """Check all ``series`` concurrently and report per entry."""
        started = time.monotonic()
        logger.info("Scanning %d series", len(series))
        results = await asyncio.gather(*(self._guarded(entry) for entry in series))
        report = ScanReport(results=list(results), elapsed=time.monotonic() - started)
        logger.info(
            "Scan finished in %.1fs: %d advanced, %d failed",
            report.elapsed, len(report.advanced), len(report.failed),
        )
        return report

    async def _guarded(self, series: TrackedSeries) -> EntryResult:
        started = time.monotonic()
        try:
            result = await asyncio.wait_for(
                self.check(series), timeout=self.config.entry_timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Timed out after %.0fs checking %s", self.config.entry_timeout_seconds, series.url
            )
            result = EntryResult(url=series.url, error="timeout")
        except Exception as e:
            logger.warning("Error checking %s: %s", series.url, e)
            logger.debug("Scan error details", exc_info=True)
            result = EntryResult(url=series.url, error=f"{type(e).__name__}: {e}")
        result.elapsed = time.monotonic() - started
        return result

    async def check(self, series: TrackedSeries) -> EntryResult:
        """Check one series and update it in place."""
        if series.has_new_chapter:
            logger.debug("Skipping %s, update already pending", series.url)
            return EntryResult(url=series.url, skipped=True)

        if series.chapter_url_template:
            next_chapter = math.floor(series.chapter) + 1
            if await self.prober.exists(series.chapter_url_template, next_chapter):
                series.has_new_chapter = True
                logger.info("Chapter %d of %s is out (probe)", next_chapter, series.title)
                return EntryResult(url=series.url, probed=True, advanced=True)

        outcome = await self.orchestrator.fetch(series.url)
        if not outcome.success:
            return EntryResult(
                url=series.url,
                probed=bool(series.chapter_url_template),
                error=f"{outcome.failure.value if outcome.failure else 'failed'}: {outcome.reason}",
            )

        latest = self.extractor.extract(
            outcome.html,
            page_url=series.url,
            custom_selector=series.latest_chapter_selector,
            custom_regex=series.chapter_number_regex,
        )
        result = EntryResult(
            url=series.url,
            probed=bool(series.chapter_url_template),
            latest=latest,
            tier=outcome.tier.value if outcome.tier else None,
        )
        if latest is None:
            logger.info("No chapter found on %s", series.url)
            result.error = "no chapter found"
            return result

        before = series.chapter
        result.advanced = apply_latest(series, latest)
        result.chapter_bumped = series.chapter != before
        if result.advanced:
            logger.info(
                "New chapter for %s: latest=%s stored=%d", series.title, latest, series.chapter
            )
        return result

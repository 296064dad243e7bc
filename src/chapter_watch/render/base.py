"""Contract for the browser-grade render collaborator."""

from abc import ABC, abstractmethod

from chapter_watch.extractor.grammar import ChapterCandidate
from chapter_watch.extractor.metadata import detect_chapter_from_metadata


class RenderFallback(ABC):
    """Abstract base class for browser-backed renderers.

    Implementations own one logical browser session and serialize access to
    it internally; callers may issue requests concurrently and simply await
    the response.
    """

    @abstractmethod
    async def render(
        self, url: str, timeout: float, user_agent: str | None = None
    ) -> str | None:
        """Load ``url`` in a real browser and return the rendered HTML, or None."""

    @abstractmethod
    async def warm_up_cookies(self, url: str, timeout: float) -> list[dict] | None:
        """Visit the origin and then ``url``, returning the cookies the browser holds.

        Returns None when the warm-up failed.
        """

    @abstractmethod
    async def solve_interactively(self, url: str, timeout: float) -> bool:
        """Show ``url`` to a human until the clearance cookie appears or time runs out."""

    async def detect_chapter(self, url: str, timeout: float) -> ChapterCandidate | None:
        """Render ``url`` and read its chapter number from page metadata."""
        html = await self.render(url, timeout)
        if not html:
            return None
        return detect_chapter_from_metadata(html, url)

    @abstractmethod
    async def __aenter__(self):
        """Async context manager entry."""

    @abstractmethod
    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""

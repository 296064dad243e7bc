"""Browser-grade rendering for pages that block plain HTTP."""

from chapter_watch.render.base import RenderFallback
from chapter_watch.render.playwright_renderer import PlaywrightRenderer

__all__ = [
    "PlaywrightRenderer",
    "RenderFallback",
]

"""Find the latest chapter number on a series page."""

import logging
import re
from collections.abc import Callable, Iterable
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Tag
from lxml import etree
from lxml import html as lxml_html
from soupsieve import SelectorSyntaxError

from chapter_watch.extractor.grammar import ChapterCandidate, parse_chapter_candidate

logger = logging.getLogger(__name__)

# Chapter-list containers used by common reader themes (Madara and others),
# most specific first. All of them run; their candidates are pooled.
STRUCTURAL_SELECTORS: tuple[str, ...] = (
    'li[class*="wp-manga-chapter"] a',
    'ul[class*="chapter-list"] a',
    'div[class*="chapter-list"] a',
    'div[class*="listing-chapters_wrap"] a',
    'div[class*="eplist"] a',
    '[class*="episode-list"] a',
    'div[class*="chapters"] a',
    'div[class*="list"] a',
)

_CHAPTER_PATH_RE = re.compile(r"[/\-_](?:ch|chap|chapter)[\-_]?\d", re.IGNORECASE)


def _chapter_keyword_anchors(soup: BeautifulSoup) -> list[Tag]:
    """Anchors whose href or text mentions "chapter"."""
    found = []
    for a in soup.find_all("a"):
        href = str(a.get("href") or "").lower()
        text = a.get_text(" ", strip=True).lower()
        if "chapter" in href or "chapter" in text:
            found.append(a)
    return found


def _looks_like_xpath(selector: str) -> bool:
    return selector.lstrip().startswith(("/", "("))


class ChapterExtractor:
    """Pick the highest trustworthy chapter number from a series page.

    Candidates come only from chapter-list structures (and an optional
    user selector); free page text is never consulted, since "related
    series" widgets and footers are full of plausible-looking numbers.
    """

    def __init__(self, structural_selectors: Iterable[str] = STRUCTURAL_SELECTORS):
        self.structural_selectors = tuple(structural_selectors)

    def extract(
        self,
        html: str,
        page_url: str | None = None,
        custom_selector: str | None = None,
        custom_regex: str | None = None,
    ) -> float | None:
        """Return the latest chapter value, or None when nothing qualifies."""
        best = self.best_candidate(html, page_url, custom_selector, custom_regex)
        return best.value if best else None

    def best_candidate(
        self,
        html: str,
        page_url: str | None = None,
        custom_selector: str | None = None,
        custom_regex: str | None = None,
    ) -> ChapterCandidate | None:
        candidates = self.candidates(html, page_url, custom_selector, custom_regex)
        if not candidates:
            return None
        best = max(candidates, key=lambda c: c.value)
        logger.debug("Best chapter candidate %s (source=%s)", best.value, best.source)
        return best

    def candidates(
        self,
        html: str,
        page_url: str | None = None,
        custom_selector: str | None = None,
        custom_regex: str | None = None,
    ) -> list[ChapterCandidate]:
        """Every candidate from every applicable rule, unfiltered by rank."""
        if not html or not html.strip():
            return []
        soup = BeautifulSoup(html, "lxml")
        pool: list[ChapterCandidate] = []

        if custom_selector and custom_selector.strip():
            links = self._select_custom(html, soup, custom_selector)
            pool.extend(self._from_links(links, "custom", page_url, custom_regex))

        for selector in self.structural_selectors:
            links = [(str(a.get("href") or ""), a.get_text(" ", strip=True)) for a in soup.select(selector)]
            pool.extend(self._from_links(links, selector, page_url, custom_regex))

        links = [(str(a.get("href") or ""), a.get_text(" ", strip=True)) for a in _chapter_keyword_anchors(soup)]
        pool.extend(self._from_links(links, "chapter-anchor", page_url, custom_regex))
        return pool

    def _select_custom(
        self, html: str, soup: BeautifulSoup, selector: str
    ) -> list[tuple[str, str]]:
        """Evaluate a user selector; XPath via lxml, anything else as CSS."""
        if _looks_like_xpath(selector):
            try:
                tree = lxml_html.fromstring(html)
                nodes = tree.xpath(selector)
            except (etree.XPathError, etree.ParserError, ValueError) as e:
                logger.warning("Custom XPath %r failed: %s", selector, e)
                return []
            if not isinstance(nodes, list):
                return []
            links = []
            for node in nodes:
                if isinstance(node, str):
                    # Attribute or text() results
                    links.append((str(node), str(node)))
                elif hasattr(node, "text_content"):
                    links.append((node.get("href") or "", node.text_content().strip()))
            return links

        try:
            tags = soup.select(selector)
        except SelectorSyntaxError as e:
            logger.warning("Custom selector %r failed: %s", selector, e)
            return []
        return [(str(t.get("href") or ""), t.get_text(" ", strip=True)) for t in tags]

    def _from_links(
        self,
        links: list[tuple[str, str]],
        source: str,
        page_url: str | None,
        custom_regex: str | None,
    ) -> list[ChapterCandidate]:
        found = []
        accept = _series_filter(page_url)
        for href, text in links:
            if not accept(href):
                logger.debug("[chap-skip] off-series link: %s", href[:120])
                continue
            parsed = parse_chapter_candidate(text, custom_regex) or parse_chapter_candidate(
                href, custom_regex
            )
            if parsed is None or not parsed.is_valid:
                continue
            found.append(ChapterCandidate(value=parsed.value, source=f"{source}|{parsed.source}"))
            logger.debug("[chap-cand] %s src=%s href=%s", parsed.value, source, href[:120])
        return found


def _series_filter(page_url: str | None) -> Callable[[str], bool]:
    """Build a predicate accepting only chapter links of the page's own series."""
    if not page_url:
        return lambda href: True

    page = urlparse(page_url)
    page_host = (page.hostname or "").lower()
    prefix = page.path.rstrip("/") + "/"

    def accept(href: str) -> bool:
        if not href or not href.strip():
            # Nothing to judge; text-only nodes from a custom selector
            return True
        try:
            absolute = urlparse(urljoin(page_url, href.strip()))
        except ValueError:
            return False
        if (absolute.hostname or "").lower() != page_host:
            return False
        path = absolute.path
        if not path.lower().startswith(prefix.lower()):
            return False
        return "/chapter" in path[len(prefix) - 1:].lower() or bool(_CHAPTER_PATH_RE.search(path))

    return accept

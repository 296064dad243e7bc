"""Chapter detection from page metadata, for pages that are a single chapter.

Used on rendered chapter pages, where there is no chapter list to read: the
number comes from linked-data blocks, meta titles, headings or the
canonical URL, parsed with the same grammar as the list extractor.
"""

import json
import logging
from collections.abc import Iterator
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from chapter_watch.extractor.grammar import (
    ChapterCandidate,
    is_valid_chapter,
    parse_chapter_candidate,
    parse_chapter_number,
)

logger = logging.getLogger(__name__)

HEADING_SELECTORS = (
    "h1, h2, .chapter-title, .entry-title, .post-title, "
    ".reader-header, .wp-manga-chapter, .cha-title"
)


def _ld_json_objects(soup: BeautifulSoup) -> Iterator[dict]:
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        raw = script.string or script.get_text()
        if not raw or not raw.strip():
            continue
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug("Skipping malformed ld+json block")
            continue
        items = data if isinstance(data, list) else [data]
        for item in items:
            if not isinstance(item, dict):
                continue
            yield item
            for nested in item.get("@graph") or []:
                if isinstance(nested, dict):
                    yield nested


def _type_names(obj: dict) -> str:
    value = obj.get("@type") or ""
    if isinstance(value, list):
        value = " ".join(str(v) for v in value)
    return str(value).lower()


def _from_ld_json(soup: BeautifulSoup) -> ChapterCandidate | None:
    for obj in _ld_json_objects(soup):
        name = str(obj.get("name") or obj.get("headline") or "")
        value = obj.get("chapterNumber", obj.get("episodeNumber"))
        type_names = _type_names(obj)
        if value is None and (
            "chapter" in type_names
            or "episode" in type_names
            or parse_chapter_number(name) is not None
        ):
            value = obj.get("position")
        if value is not None:
            try:
                number = float(value)
            except (TypeError, ValueError):
                number = None
            if number is not None and is_valid_chapter(number):
                return ChapterCandidate(value=number, source="ld+json")
        parsed = parse_chapter_candidate(name)
        if parsed:
            return ChapterCandidate(value=parsed.value, source="ld+json:name")
    return None


def _from_meta(soup: BeautifulSoup) -> ChapterCandidate | None:
    og = soup.find("meta", attrs={"property": "og:title"})
    meta = soup.find("meta", attrs={"name": "title"})
    title = soup.find("title")
    sources = (
        ("og:title", og.get("content") if og else None),
        ("meta:title", meta.get("content") if meta else None),
        ("document.title", title.get_text(strip=True) if title else None),
    )
    for source, text in sources:
        parsed = parse_chapter_candidate(str(text) if text else None)
        if parsed:
            return ChapterCandidate(value=parsed.value, source=f"meta:{source}")
    return None


def _from_headings(soup: BeautifulSoup) -> ChapterCandidate | None:
    for element in soup.select(HEADING_SELECTORS):
        parsed = parse_chapter_candidate(element.get_text(" ", strip=True))
        if parsed:
            return ChapterCandidate(value=parsed.value, source="heading")
    return None


def _from_canonical(soup: BeautifulSoup, page_url: str | None) -> ChapterCandidate | None:
    link = soup.find("link", rel="canonical")
    href = link.get("href") if link else None
    target = urljoin(page_url or "", str(href)) if href else page_url
    if not target:
        return None
    title = soup.find("title")
    text = urlparse(target).path + " " + (title.get_text(strip=True) if title else "")
    parsed = parse_chapter_candidate(text)
    if parsed:
        return ChapterCandidate(value=parsed.value, source="url")
    return None


def detect_chapter_from_metadata(html: str, page_url: str | None = None) -> ChapterCandidate | None:
    """Read the chapter number of a chapter page from its metadata.

    Linked data is trusted first, then meta titles, headings and finally the
    canonical URL. Returns None when none of them carries a keyword-bound
    number.
    """
    if not html or not html.strip():
        return None
    soup = BeautifulSoup(html, "lxml")
    return (
        _from_ld_json(soup)
        or _from_meta(soup)
        or _from_headings(soup)
        or _from_canonical(soup, page_url)
    )

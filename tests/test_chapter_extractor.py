"""Tests for latest-chapter extraction from series pages."""

import pytest

from chapter_watch.extractor.chapter_list import ChapterExtractor
from tests.conftest import SERIES_HTML

PAGE_URL = "https://example.com/manga/some-series/"


@pytest.fixture
def extractor() -> ChapterExtractor:
    return ChapterExtractor()


@pytest.mark.unit
class TestChapterExtractor:
    def test_reads_wp_manga_list(self, extractor):
        assert extractor.extract(SERIES_HTML, PAGE_URL) == 12

    def test_off_series_links_are_ignored(self, extractor):
        html = """<html><body>
        <div class="chapter-list">
          <a href="/manga/some-series/chapter-12/">Chapter 12</a>
          <a href="/manga/some-series/chapter-11/">Chapter 11</a>
        </div>
        <div class="related-list">
          <a href="/manga/other-series/chapter-980/">Chapter 980</a>
          <a href="https://elsewhere.com/manga/some-series/chapter-500/">Chapter 500</a>
        </div>
        </body></html>"""
        assert extractor.extract(html, PAGE_URL) == 12

    def test_no_chapter_anchors_is_none(self, extractor):
        html = "<html><body><p>Chapter 5 is coming soon</p><a href='/about'>About us</a></body></html>"
        assert extractor.extract(html, PAGE_URL) is None

    @pytest.mark.parametrize("html", ["", "   ", "<html></html>"])
    def test_empty_input_is_none(self, extractor, html):
        assert extractor.extract(html, PAGE_URL) is None

    def test_free_text_numbers_are_never_used(self, extractor):
        html = """<html><body><footer>© 2024, 1500 readers</footer>
        <ul class="chapter-list"><li><a href="/manga/some-series/chapter-3/">Chapter 3</a></li></ul>
        </body></html>"""
        assert extractor.extract(html, PAGE_URL) == 3

    def test_href_used_when_text_has_no_number(self, extractor):
        html = """<ul class="chapter-list">
        <li><a href="/manga/some-series/chapter-41/">Read latest</a></li>
        </ul>"""
        assert extractor.extract(html, PAGE_URL) == 41

    def test_without_page_url_everything_counts(self, extractor):
        html = '<div class="eplist"><a href="/x/episode-2">Episode 2</a><a href="/y/">Episode 8</a></div>'
        assert extractor.extract(html) == 8

    def test_custom_css_selector_is_pooled(self, extractor):
        html = """<div class="latest"><span>Chapter 57</span></div>
        <ul class="chapter-list"><li><a href="/manga/some-series/chapter-56/">Chapter 56</a></li></ul>"""
        best = extractor.best_candidate(html, PAGE_URL, custom_selector="div.latest span")
        assert best.value == 57
        assert best.source.startswith("custom")

    def test_custom_xpath_selector(self, extractor):
        html = '<div id="newest"><a href="/manga/some-series/chapter-90/">Chapter 90</a></div>'
        assert extractor.extract(html, PAGE_URL, custom_selector="//div[@id='newest']/a") == 90

    def test_invalid_custom_selector_is_ignored(self, extractor):
        assert extractor.extract(SERIES_HTML, PAGE_URL, custom_selector="div[[[") == 12
        assert extractor.extract(SERIES_HTML, PAGE_URL, custom_selector="//div[") == 12

    def test_custom_regex_applies_to_links(self, extractor):
        html = """<ul class="chapter-list">
        <li><a href="/manga/some-series/chapter-7/">Folge 7</a></li>
        <li><a href="/manga/some-series/chapter-8/">Folge 8</a></li>
        </ul>"""
        assert extractor.extract(html, PAGE_URL, custom_regex=r"Folge (\d+)") == 8

    def test_candidates_are_pooled_across_sources(self, extractor):
        candidates = extractor.candidates(SERIES_HTML, PAGE_URL)
        sources = {c.source.split("|")[0] for c in candidates}
        assert "chapter-anchor" in sources
        assert any("wp-manga-chapter" in s for s in sources)

"""Tests for tracked-series validation."""

import pytest
from pydantic import ValidationError

from chapter_watch.errors import InvalidTemplateError, InvalidURLError
from chapter_watch.models import TrackedSeries


def _cause(exc_info) -> Exception:
    return exc_info.value.errors()[0]["ctx"]["error"]


@pytest.mark.unit
class TestTrackedSeries:
    def test_scheme_is_prepended(self):
        series = TrackedSeries(url="example.com/manga/x/")
        assert series.url == "https://example.com/manga/x/"

    def test_title_defaults_to_host(self):
        assert TrackedSeries(url="https://Example.com/manga/x/").title == "example.com"
        assert TrackedSeries(url="https://example.com/", title="Mine").title == "Mine"

    def test_missing_host_raises_invalid_url(self):
        with pytest.raises(ValidationError) as exc_info:
            TrackedSeries(url="https://")
        assert isinstance(_cause(exc_info), InvalidURLError)

    @pytest.mark.parametrize("template", ["https://example.com/chapter/", "https://example.com/$chapter-$chapter"])
    def test_template_token_count(self, template):
        with pytest.raises(ValidationError) as exc_info:
            TrackedSeries(url="https://example.com/", chapter_url_template=template)
        assert isinstance(_cause(exc_info), InvalidTemplateError)

    def test_blank_optionals_become_none(self):
        series = TrackedSeries(
            url="https://example.com/",
            chapter_url_template="  ",
            latest_chapter_selector="",
            chapter_number_regex=" ",
        )
        assert series.chapter_url_template is None
        assert series.latest_chapter_selector is None
        assert series.chapter_number_regex is None

    def test_invalid_regex_rejected(self):
        with pytest.raises(ValidationError):
            TrackedSeries(url="https://example.com/", chapter_number_regex="(unclosed")

    def test_negative_chapter_rejected(self):
        with pytest.raises(ValidationError):
            TrackedSeries(url="https://example.com/", chapter=-1)

"""Tests for next-chapter existence probes."""

import httpx
import pytest

from chapter_watch.errors import InvalidTemplateError
from chapter_watch.prober import Prober, build_chapter_url, format_chapter, validate_template
from tests.conftest import scripted_transport

TEMPLATE = "https://example.com/manga/some-series/chapter-$chapter/"


@pytest.mark.unit
class TestTemplates:
    @pytest.mark.parametrize("number,expected", [(7, "7"), (7.0, "7"), (6.5, "6.5"), (6.25, "6.25"), (6.125, "6.12")])
    def test_format_chapter(self, number, expected):
        assert format_chapter(number) == expected

    def test_build_url(self):
        assert build_chapter_url(TEMPLATE, 7) == "https://example.com/manga/some-series/chapter-7/"

    def test_build_url_adds_scheme(self):
        assert build_chapter_url("example.com/c/$chapter", 3) == "https://example.com/c/3"

    @pytest.mark.parametrize("template", ["https://example.com/chapter/", "https://x.com/$chapter/$chapter"])
    def test_token_count_enforced(self, template):
        with pytest.raises(InvalidTemplateError):
            validate_template(template)


@pytest.mark.unit
@pytest.mark.asyncio
class TestExists:
    async def _exists(self, make_http, throttle, responses, number=7):
        transport, seen = scripted_transport(responses)
        async with make_http(transport) as http:
            found = await Prober(http, throttle).exists(TEMPLATE, number)
        return found, seen

    async def test_redirect_means_exists(self, make_http, no_wait_throttle):
        found, seen = await self._exists(
            make_http, no_wait_throttle,
            [httpx.Response(301, headers={"location": "https://example.com/manga/some-series/chapter-7"})],
        )
        assert found
        assert [r.method for r in seen] == ["HEAD"]
        assert seen[0].url.path == "/manga/some-series/chapter-7/"

    async def test_ok_means_exists(self, make_http, no_wait_throttle):
        found, _ = await self._exists(make_http, no_wait_throttle, [httpx.Response(200)])
        assert found

    async def test_not_found_means_missing(self, make_http, no_wait_throttle):
        found, seen = await self._exists(make_http, no_wait_throttle, [httpx.Response(404, headers={"server": "nginx"})])
        assert not found
        assert len(seen) == 1

    async def test_vendor_signature_means_missing(self, make_http, no_wait_throttle):
        found, seen = await self._exists(
            make_http, no_wait_throttle, [httpx.Response(403, headers={"server": "cloudflare", "cf-ray": "1"})]
        )
        assert not found
        assert len(seen) == 1

    @pytest.mark.parametrize("status", [403, 405, 429])
    async def test_head_refused_falls_back_to_ranged_get(self, make_http, no_wait_throttle, status):
        found, seen = await self._exists(make_http, no_wait_throttle, [httpx.Response(status), httpx.Response(206)])
        assert found
        assert [r.method for r in seen] == ["HEAD", "GET"]
        assert seen[1].headers["range"] == "bytes=0-1023"

    async def test_ranged_get_not_found(self, make_http, no_wait_throttle):
        found, _ = await self._exists(make_http, no_wait_throttle, [httpx.Response(405), httpx.Response(404)])
        assert not found

    async def test_transport_error_on_both_requests_means_missing(self, make_http, no_wait_throttle):
        found, seen = await self._exists(make_http, no_wait_throttle, [httpx.ConnectError("down")])
        assert not found
        assert [r.method for r in seen] == ["HEAD", "GET"]

    async def test_head_transport_error_falls_back_to_ranged_get(self, make_http, no_wait_throttle):
        found, seen = await self._exists(
            make_http, no_wait_throttle, [httpx.RemoteProtocolError("HEAD dropped"), httpx.Response(206)]
        )
        assert found
        assert [r.method for r in seen] == ["HEAD", "GET"]
        assert seen[1].headers["range"] == "bytes=0-1023"

    async def test_probes_are_throttled(self, make_http):
        class CountingThrottle:
            def __init__(self):
                self.hosts = []

            async def acquire(self, host):
                self.hosts.append(host)
                return 0.0

        throttle = CountingThrottle()
        await self._exists(make_http, throttle, [httpx.Response(405), httpx.Response(200)])
        assert throttle.hosts == ["example.com", "example.com"]

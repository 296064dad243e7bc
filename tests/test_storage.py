"""Tests for the JSON state file."""

import asyncio
import json

import pytest

from chapter_watch.fetcher.host_store import HostStrategyStore
from chapter_watch.models import TrackedSeries
from chapter_watch.storage import JsonStateStore


@pytest.mark.unit
@pytest.mark.asyncio
class TestJsonStateStore:
    async def test_missing_file_is_empty(self, tmp_path):
        store = JsonStateStore(tmp_path / "missing" / "state.json")
        assert await store.load_series() == []
        assert await store.load_render_required_hosts() == []

    async def test_corrupt_file_is_empty(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("{broken", encoding="utf-8")
        store = JsonStateStore(path)
        assert await store.load_series() == []

    async def test_sections_are_saved_independently(self, tmp_path):
        path = tmp_path / "state.json"
        store = JsonStateStore(path)
        series = [TrackedSeries(url="https://example.com/manga/x/", chapter=4, has_new_chapter=True)]

        await store.save_series(series)
        await store.save_render_required_hosts(["b.com", "a.com"])

        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["render_required_hosts"] == ["a.com", "b.com"]
        assert data["series"][0]["chapter"] == 4
        loaded = await store.load_series()
        assert loaded == series
        assert list(tmp_path.glob("*.tmp")) == []

    async def test_invalid_series_entries_are_skipped(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text(
            json.dumps({"series": [{"url": "https://"}, {"url": "example.com/ok/", "chapter": 2}]}),
            encoding="utf-8",
        )
        loaded = await JsonStateStore(path).load_series()
        assert [s.url for s in loaded] == ["https://example.com/ok/"]

    async def test_host_store_round_trip(self, tmp_path):
        store = JsonStateStore(tmp_path / "state.json")
        hosts = HostStrategyStore(store)
        await hosts.mark_render_required("Example.com")

        reloaded = HostStrategyStore(store)
        reloaded.load_from_persisted_list(await store.load_render_required_hosts())
        assert reloaded.is_render_required("example.com")

    async def test_concurrent_host_marks_are_all_persisted(self, tmp_path):
        path = tmp_path / "state.json"
        store = JsonStateStore(path)
        hosts = HostStrategyStore(store)

        await asyncio.gather(*(hosts.mark_render_required(f"h{i}.example") for i in range(20)))

        persisted = await store.load_render_required_hosts()
        assert sorted(persisted) == sorted(f"h{i}.example" for i in range(20))
        assert list(tmp_path.glob("*.tmp")) == []

    async def test_concurrent_section_saves_keep_both_sections(self, tmp_path):
        path = tmp_path / "state.json"
        store = JsonStateStore(path)
        series = [TrackedSeries(url="https://example.com/manga/x/", chapter=2)]

        await asyncio.gather(store.save_series(series), store.save_render_required_hosts(["a.com"]))

        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["render_required_hosts"] == ["a.com"]
        assert data["series"][0]["chapter"] == 2

"""Tests for the command-line interface."""

import json
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from chapter_watch import __version__
from chapter_watch.cli import app

runner = CliRunner()


@pytest.fixture
def state(tmp_path, reset_package_logger):
    return tmp_path / "state.json"


def invoke(state, *args):
    return runner.invoke(app, ["--state", str(state), "--no-render", *args])


def saved(state) -> dict:
    return json.loads(state.read_text(encoding="utf-8"))


@pytest.mark.unit
class TestSeriesCommands:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_add_and_list(self, state):
        result = invoke(state, "add", "example.com/manga/x/", "--chapter", "3", "--title", "X")
        assert result.exit_code == 0, result.output

        series = saved(state)["series"]
        assert series[0]["url"] == "https://example.com/manga/x/"
        assert series[0]["chapter"] == 3

        result = invoke(state, "list")
        assert result.exit_code == 0
        assert "X" in result.output

    def test_add_duplicate_fails(self, state):
        invoke(state, "add", "https://example.com/manga/x/")
        result = invoke(state, "add", "example.com/manga/x/")
        assert result.exit_code == 1
        assert len(saved(state)["series"]) == 1

    def test_add_rejects_bad_template(self, state):
        result = invoke(state, "add", "https://example.com/x/", "--template", "https://example.com/x/chapter/")
        assert result.exit_code == 1
        assert not state.exists()

    def test_remove(self, state):
        invoke(state, "add", "https://example.com/manga/x/")
        assert invoke(state, "remove", "example.com/manga/x/").exit_code == 0
        assert saved(state)["series"] == []
        assert invoke(state, "remove", "example.com/manga/x/").exit_code == 1

    def test_ack_clears_flag(self, state):
        state.write_text(
            json.dumps({"series": [{"url": "https://example.com/manga/x/", "chapter": 4, "has_new_chapter": True}]}),
            encoding="utf-8",
        )
        result = invoke(state, "ack", "https://example.com/manga/x/", "--chapter", "6")
        assert result.exit_code == 0, result.output
        entry = saved(state)["series"][0]
        assert entry["has_new_chapter"] is False
        assert entry["chapter"] == 6


@pytest.mark.unit
class TestOtherCommands:
    def test_hosts_list_and_forget(self, state):
        state.write_text(json.dumps({"render_required_hosts": ["a.example", "b.example"]}), encoding="utf-8")

        result = invoke(state, "hosts")
        assert result.exit_code == 0
        assert "a.example" in result.output

        result = invoke(state, "hosts", "--forget", "A.example")
        assert result.exit_code == 0
        assert saved(state)["render_required_hosts"] == ["b.example"]

        assert invoke(state, "hosts", "--forget", "unknown.example").exit_code == 1

    def test_scan_with_nothing_tracked(self, state):
        result = invoke(state, "scan")
        assert result.exit_code == 0
        assert "No series tracked" in result.output

    def test_probe_rejects_bad_template(self, state):
        result = invoke(state, "probe", "https://example.com/chapter/", "4")
        assert result.exit_code == 1

    def test_fetch_rejects_bad_regex_before_network(self, state):
        with patch("chapter_watch.cli.open_pipeline") as pipeline:
            result = invoke(state, "fetch", "https://example.com/manga/x/", "--regex", "(unclosed")
        assert result.exit_code == 1
        assert "Invalid chapter number regex" in result.output
        pipeline.assert_not_called()

    def test_bad_config_file(self, state, tmp_path):
        config = tmp_path / "config.toml"
        config.write_text("[throttle]\nmin_delay_seconds = -5\n", encoding="utf-8")
        result = runner.invoke(app, ["--config", str(config), "--state", str(state), "list"])
        assert result.exit_code == 1

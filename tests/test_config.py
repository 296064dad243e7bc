"""Tests for configuration loading."""

import pytest
from pydantic import ValidationError

from chapter_watch.config import AppConfig, FetcherConfig


@pytest.mark.unit
class TestAppConfig:
    def test_defaults(self):
        config = AppConfig()
        assert config.throttle.min_delay_seconds == 0.9
        assert config.fetcher.max_attempts == 3
        assert len(config.fetcher.user_agents) == 3
        assert config.render.solve_timeout_seconds == 150
        assert config.render.clearance_cookie == "cf_clearance"
        assert config.scanner.entry_timeout_seconds == 300

    def test_from_toml(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text(
            'verbose = true\n\n[render]\nenabled = false\nretries = 2\n\n[throttle]\nmin_delay_seconds = 2.5\n',
            encoding="utf-8",
        )
        config = AppConfig.from_toml(path)
        assert config.verbose
        assert not config.render.enabled
        assert config.render.retries == 2
        assert config.throttle.min_delay_seconds == 2.5

    def test_to_toml_round_trip(self, tmp_path):
        config = AppConfig(verbose=True)
        config.fetcher.max_attempts = 5
        config.render.interactive_solve = False
        path = tmp_path / "config.toml"
        path.write_text(config.to_toml(), encoding="utf-8")

        loaded = AppConfig.from_toml(path)
        assert loaded.verbose
        assert loaded.fetcher.max_attempts == 5
        assert not loaded.render.interactive_solve

    def test_empty_user_agent_pool_rejected(self):
        with pytest.raises(ValidationError):
            FetcherConfig(user_agents=[])

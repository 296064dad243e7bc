"""Configuration management with Pydantic models."""

import tomllib
from pathlib import Path

from pydantic import BaseModel, Field, model_validator

CHROME_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/127.0.0.0 Safari/537.36"
)
FIREFOX_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:128.0) Gecko/20100101 Firefox/128.0"
)
EDGE_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Edg/127.0.0.0 Safari/537.36"
)
MOBILE_USER_AGENT = (
    "Mozilla/5.0 (Linux; Android 14; Pixel 7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/127.0.0.0 Mobile Safari/537.36"
)


def default_data_dir() -> Path:
    """Directory holding the state file, logs and the browser profile."""
    return Path.home() / ".local" / "share" / "chapter-watch"


class ThrottleConfig(BaseModel):
    """Per-host request spacing."""

    min_delay_seconds: float = Field(default=0.9, ge=0.0, le=60.0)
    jitter_min_seconds: float = Field(default=0.05, ge=0.0, le=10.0)
    jitter_max_seconds: float = Field(default=0.25, ge=0.0, le=10.0)

    @model_validator(mode="after")
    def _check_jitter_range(self) -> "ThrottleConfig":
        if self.jitter_max_seconds < self.jitter_min_seconds:
            raise ValueError("jitter_max_seconds must be >= jitter_min_seconds")
        return self


class FetcherConfig(BaseModel):
    """Configuration for the direct HTTP tier."""

    timeout_ms: int = Field(default=35000, ge=1000, le=120000)
    user_agents: list[str] = Field(
        default_factory=lambda: [CHROME_USER_AGENT, FIREFOX_USER_AGENT, EDGE_USER_AGENT],
        min_length=1,
    )
    accept_language: str = "de-DE,de;q=0.7,en-US;q=0.6,en;q=0.5"
    max_attempts: int = Field(default=3, ge=1, le=10)
    backoff_base_seconds: float = Field(default=0.4, ge=0.0, le=30.0)
    backoff_jitter_seconds: float = Field(default=0.2, ge=0.0, le=10.0)
    warmup_settle_seconds: float = Field(default=0.6, ge=0.0, le=10.0)


class RenderConfig(BaseModel):
    """Configuration for the browser render tier."""

    enabled: bool = True
    headless: bool = True
    timeout_ms: int = Field(default=45000, ge=1000, le=300000)
    retries: int = Field(default=1, ge=0, le=5)
    mobile_user_agent: str = MOBILE_USER_AGENT
    user_agent: str = CHROME_USER_AGENT
    profile_dir: Path = Field(default_factory=lambda: default_data_dir() / "browser-profile")
    challenge_wait_seconds: float = Field(default=30.0, ge=0.0, le=300.0)
    interactive_solve: bool = True
    solve_timeout_seconds: float = Field(default=150.0, ge=5.0, le=1800.0)
    clearance_cookie: str = "cf_clearance"


class ProberConfig(BaseModel):
    """Configuration for next-chapter existence probes."""

    timeout_ms: int = Field(default=10000, ge=1000, le=60000)
    range_bytes: int = Field(default=1024, ge=1, le=1024 * 1024)


class ScannerConfig(BaseModel):
    """Configuration for update scans."""

    entry_timeout_seconds: float = Field(default=300.0, ge=1.0, le=3600.0)


class AppConfig(BaseModel):
    """Main application configuration."""

    state_path: Path = Field(default_factory=lambda: default_data_dir() / "state.json")
    log_file: Path | None = None
    verbose: bool = False
    throttle: ThrottleConfig = Field(default_factory=ThrottleConfig)
    fetcher: FetcherConfig = Field(default_factory=FetcherConfig)
    render: RenderConfig = Field(default_factory=RenderConfig)
    prober: ProberConfig = Field(default_factory=ProberConfig)
    scanner: ScannerConfig = Field(default_factory=ScannerConfig)

    @classmethod
    def from_toml(cls, path: Path) -> "AppConfig":
        """Load config from a TOML file."""
        with open(path, "rb") as f:
            data = tomllib.load(f)
        return cls.model_validate(data)

    def to_toml(self) -> str:
        """Serialize config to TOML format."""
        data = self.model_dump(mode="json", exclude_defaults=True)
        return _dict_to_toml(data)


def _toml_value(v: object) -> str:
    """Format a Python value as a TOML literal."""
    if isinstance(v, bool):
        return "true" if v else "false"
    if isinstance(v, int):
        return str(v)
    if isinstance(v, float):
        return f"{v}"
    if isinstance(v, str):
        escaped = v.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    if isinstance(v, list):
        items = ", ".join(_toml_value(i) for i in v)
        return f"[{items}]"
    return f'"{v}"'


def _dict_to_toml(data: dict) -> str:
    """Convert a nested dict to TOML string (2 levels deep max)."""
    lines: list[str] = []
    # Scalars must precede the first table header
    for k, v in data.items():
        if not isinstance(v, dict):
            lines.append(f"{k} = {_toml_value(v)}")
    for k, v in data.items():
        if isinstance(v, dict):
            lines.append(f"\n[{k}]")
            for sk, sv in v.items():
                lines.append(f"{sk} = {_toml_value(sv)}")
    return "\n".join(lines) + "\n"

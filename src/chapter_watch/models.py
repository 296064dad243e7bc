"""Data models for tracked series."""

import re

from pydantic import BaseModel, field_validator, model_validator

from chapter_watch.prober import validate_template
from chapter_watch.utils.url_utils import host_of, normalize_url


class TrackedSeries(BaseModel):
    """One watched series page and what is known about its progress."""

    url: str
    title: str = ""
    status: str = ""
    chapter: int = 0
    has_new_chapter: bool = False
    chapter_url_template: str | None = None
    latest_chapter_selector: str | None = None
    chapter_number_regex: str | None = None

    @field_validator("url")
    @classmethod
    def _normalize_url(cls, v: str) -> str:
        return normalize_url(v)

    @field_validator("chapter")
    @classmethod
    def _non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("chapter must be >= 0")
        return v

    @field_validator("chapter_url_template")
    @classmethod
    def _check_template(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return validate_template(v.strip())

    @field_validator("latest_chapter_selector")
    @classmethod
    def _blank_selector(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return v.strip()

    @field_validator("chapter_number_regex")
    @classmethod
    def _check_regex(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"Invalid chapter number regex: {e}") from e
        return v

    @model_validator(mode="after")
    def _default_title(self) -> "TrackedSeries":
        if not self.title.strip():
            self.title = host_of(self.url)
        return self

    @property
    def host(self) -> str:
        return host_of(self.url)

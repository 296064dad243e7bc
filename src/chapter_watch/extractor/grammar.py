"""Shared grammar for reading chapter numbers out of link text, URLs and titles.

Both the chapter-list extractor and the metadata detector parse numbers
through :func:`parse_chapter_number`, so identical text always yields an
identical value. The rules form one ordered table; the first rule that
produces a valid number wins, and within a rule the largest match is taken.
There is no bare-number fallback: a number only counts when a
chapter keyword or chapter-shaped URL is attached to it.
"""

import re
from dataclasses import dataclass

from pydantic import BaseModel

MAX_CHAPTER = 20000.0

KEYWORDS = r"(?:chapter|chap|ch|episode|ep|kapitel)"
_NUMBER = r"(\d+(?:\.\d+)?)"


@dataclass(frozen=True)
class ChapterRule:
    """One named pattern whose first group holds the chapter number."""

    name: str
    pattern: re.Pattern[str]
    first_only: bool = False


CHAPTER_RULES: tuple[ChapterRule, ...] = (
    ChapterRule(
        "keyword-number",
        re.compile(rf"(?:^|[\s\-_/\[(]){KEYWORDS}\s*[:#\-]?\s*{_NUMBER}\b", re.IGNORECASE),
    ),
    ChapterRule(
        "number-keyword",
        re.compile(rf"\b{_NUMBER}\s*[:#\-]?\s*{KEYWORDS}\b", re.IGNORECASE),
    ),
    ChapterRule(
        "url-path",
        re.compile(r"(?:^|[/\-_])(?:chapter|chap|ch)[/\-_]*(\d+(?:\.\d+)?)(?=[/\-_]|$)", re.IGNORECASE),
    ),
    ChapterRule(
        "query",
        re.compile(r"[?&](?:chapter|ch|ep)=(\d+(?:\.\d+)?)", re.IGNORECASE),
        first_only=True,
    ),
)


class ChapterCandidate(BaseModel):
    """A chapter number produced by one heuristic, pending selection."""

    value: float
    source: str

    @property
    def is_valid(self) -> bool:
        return is_valid_chapter(self.value)


def is_valid_chapter(value: float) -> bool:
    """Reject zero, negatives and implausibly large values (years, ids)."""
    return 0 < value <= MAX_CHAPTER


def _to_number(text: str) -> float | None:
    try:
        value = float(text)
    except ValueError:
        return None
    return value if is_valid_chapter(value) else None


def _parse_custom(text: str, custom_regex: str) -> tuple[float | None, bool]:
    """Apply a user regex; the last non-empty group of each match is the value.

    Returns the best value and whether the regex matched at all.
    """
    matches = list(re.finditer(custom_regex, text, re.IGNORECASE))
    best: float | None = None
    for match in matches:
        for group in reversed(match.groups()):
            if not group or not group.strip():
                continue
            try:
                value = float(group)
            except ValueError:
                continue
            if best is None or value > best:
                best = value
            break
    if best is not None and best <= 0:
        best = None
    return best, bool(matches)


def match_rule(rule: ChapterRule, text: str) -> float | None:
    """Best valid number produced by ``rule`` on ``text``."""
    if rule.first_only:
        m = rule.pattern.search(text)
        return _to_number(m.group(1)) if m else None
    best: float | None = None
    for m in rule.pattern.finditer(text):
        value = _to_number(m.group(1))
        if value is not None and (best is None or value > best):
            best = value
    return best


def parse_chapter_candidate(
    text: str | None, custom_regex: str | None = None
) -> ChapterCandidate | None:
    """Parse ``text`` and report which rule produced the number."""
    if not text or not text.strip():
        return None

    if custom_regex and custom_regex.strip():
        value, matched = _parse_custom(text, custom_regex)
        if value is not None:
            if not is_valid_chapter(value):
                return None
            return ChapterCandidate(value=value, source="custom-regex")
        if not matched:
            # A user regex that does not match means this text is not a chapter
            return None

    for rule in CHAPTER_RULES:
        value = match_rule(rule, text)
        if value is not None:
            return ChapterCandidate(value=value, source=rule.name)
    return None


def parse_chapter_number(text: str | None, custom_regex: str | None = None) -> float | None:
    """Parse a chapter number from ``text`` or return None."""
    candidate = parse_chapter_candidate(text, custom_regex)
    return candidate.value if candidate else None

"""Chapter number extraction from HTML pages."""

from chapter_watch.extractor.chapter_list import ChapterExtractor
from chapter_watch.extractor.grammar import ChapterCandidate, parse_chapter_number
from chapter_watch.extractor.metadata import detect_chapter_from_metadata

__all__ = [
    "ChapterCandidate",
    "ChapterExtractor",
    "detect_chapter_from_metadata",
    "parse_chapter_number",
]

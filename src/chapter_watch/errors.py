"""Exceptions raised while validating tracked series."""


class ChapterWatchError(Exception):
    """Base class for chapter-watch errors."""


class InvalidURLError(ChapterWatchError, ValueError):
    """A series URL could not be turned into an absolute http(s) URL."""


class InvalidTemplateError(ChapterWatchError, ValueError):
    """A chapter URL template does not contain exactly one substitution token."""

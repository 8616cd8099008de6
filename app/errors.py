from __future__ import annotations


class FeedError(Exception):
    pass


class ParseError(FeedError):
    """A feed document, or one item within it, could not be parsed."""


class FetchError(FeedError):
    """An upstream endpoint could not be reached or answered with a non-2xx status."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ConfigurationError(FeedError):
    """A required credential or the persistent store is unavailable."""

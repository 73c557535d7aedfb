"""Exceptions raised by the leget scraper."""

from typing import Any, Dict, Optional


class LegetError(Exception):
    """Base exception for leget. Anything raised as this aborts the run."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self):
        if not self.context:
            return self.message
        details = ", ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{self.message} ({details})"


class ConfigError(LegetError):
    """Conflicting or invalid run options."""

    pass


class FetchError(LegetError):
    """A request did not come back with 200 OK."""

    def __init__(self, url: str, status_code: Optional[int],
                 context: Optional[Dict[str, Any]] = None):
        if status_code is None:
            message = f"Request to {url} failed"
        else:
            message = f"Request to {url} returned HTTP {status_code}"
        super().__init__(message, context)
        self.url = url
        self.status_code = status_code


class MalformedPageError(LegetError):
    """The page layout no longer matches what the extractor expects."""

    pass


class ColumnAlignmentError(LegetError):
    """The column-aligned dataset lost its equal-length invariant."""

    def __init__(self, failure, context: Optional[Dict[str, Any]] = None):
        super().__init__(failure.describe(), context)
        self.failure = failure


class EmptyReferenceListError(LegetError):
    """A filtered scrape was requested but the set list has no entries."""

    pass

from __future__ import annotations


class ScrapeError(Exception):
    """Base class for errors that end a listing task as FAILED."""


class NavigationError(ScrapeError):
    """The detail page did not reach a usable state in time."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"navigation to {url} failed: {reason}")
        self.url = url
        self.reason = reason


class SinkError(ScrapeError):
    """Appending a row to the output file failed."""


class InvalidTransition(ScrapeError):
    """A task state machine received an event its current state does not accept."""

"""Playscrape error taxonomy."""


class PlayscrapeError(Exception):
    """Base class for all playscrape errors."""


class FatalError(PlayscrapeError):
    """Errors that abort the whole run.

    Per-record and per-action handlers re-raise these instead of recording
    them, and the retry helper never retries them.
    """


class ActionConfigError(FatalError):
    """The action file or an action definition is invalid."""


class ScrapeStateError(FatalError):
    """Scrape bookkeeping was used out of order (a programming error)."""


class SnapshotMismatchError(FatalError):
    """Extracted data differs from the stored test snapshot."""


class NavigationError(FatalError):
    """The browser could not be returned to a known page."""


class ImageDownloadError(PlayscrapeError):
    """An image could not be fetched; fails the enclosing record only."""
